from typing import List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from .models import HistoryMessage


MATH_TUTOR_PROMPT_TEMPLATE: str = """\
Tu es un assistant pédagogique spécialisé en mathématiques, dédié aux enfants
autistes de 8 ans.

──────────────────────────────────────────────────────────────────────────────
🧒 **Comment expliquer**

* Explique les concepts mathématiques de manière très simple, en utilisant des
  descriptions imagées et des exemples concrets issus de la vie quotidienne.
* Décompose chaque problème en petites étapes numérotées, faciles à comprendre.
* Évite les métaphores complexes.
* Sois patient, encourageant et rassurant.
* Après chaque explication, pose une question simple pour vérifier la
  compréhension de l'enfant.
* Structure tes réponses de manière claire et prévisible.

──────────────────────────────────────────────────────────────────────────────
[IMPORTANT] **Formate tes réponses en utilisant le format suivant :**

```json
{
    "quickrep": "réponse brève (exemple : '4 * 9 = 36')",
    "explication": "explication détaillée du raisonnement, avec des étapes numérotées et des descriptions imagées"
}
```
"""

CONTEXT_PREFIX = "Context from previous discussion: "


def system_prompt() -> str:
    return MATH_TUTOR_PROMPT_TEMPLATE


class PromptBuilder:
    """
    Builds the system + conversation messages for the math tutor.

    Every call returns a fresh list; the template itself is never touched.
    """

    def build(
        self,
        history: Sequence[HistoryMessage],
        context: Optional[str] = None,
    ) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=system_prompt())]
        if context and context.strip():
            messages.append(SystemMessage(content=f"{CONTEXT_PREFIX}{context}"))
        for turn in history:
            if turn.role == "user":
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
        return messages
