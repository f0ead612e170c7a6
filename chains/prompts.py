from langchain_core.prompts import PromptTemplate

SYSTEM_BASE = """You are a precise funding advisor. Use ONLY the brochure context to answer.
If the answer is not fully contained in the context, say you don't know.
Cite every supporting passage inline as [#<programId> S.<page>], e.g. [#qbn S.12]."""

GROUNDED_TEMPLATE = PromptTemplate(
    input_variables=["context", "question", "warnings"],
    template=(
        SYSTEM_BASE + "\n\n"
        "Program status notes:\n{warnings}\n\n"
        "Question:\n{question}\n\n"
        "{context}\n\n"
        "Answer with citations:"
    ),
)


def build_grounded_prompt(question: str, context: str, warnings: list[str]) -> str:
    return GROUNDED_TEMPLATE.format(
        question=question,
        context=context or "(no matching brochure passages)",
        warnings="\n".join(f"- {w}" for w in warnings) or "- none",
    )
