INJECTION_PHRASES = (
    "ignore previous instructions",
    "act as",
    "system prompt",
    "jailbreak",
    "do anything now",
    "developer mode",
    "override",
    "forget all rules",
    "///",
    "base64, http",
)


def detect_injection(query: str) -> bool:
    """Naive prompt-injection screen run on user questions before retrieval."""
    s = query.lower()
    return any(phrase in s for phrase in INJECTION_PHRASES)
