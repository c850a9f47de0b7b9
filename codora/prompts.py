"""Prompt templates for code explanations."""

from codora.schemas import Message, ProviderRequest

SYSTEM_PROMPT = """You are Codora, a code exploration assistant. You give clear, concise explanations of code snippets so developers can find their way around unfamiliar codebases.

Guidelines:
- Explain what the code is for and how it works
- Point out key concepts, patterns and relationships to other code
- Prefer plain language over jargon
- Stay practical
- Keep hover explanations under 200 words
- Assume the code is written in {language}"""

USER_PROMPT = """Explain this {context} code snippet:

```{language}
{code}
```

Cover:
1. What the code does
2. Key concepts or patterns it uses
3. How it likely fits into the surrounding codebase

Keep it short and beginner-friendly."""


def build_messages(code: str, context: str, language: str) -> list[Message]:
    return [
        Message(role="system", content=SYSTEM_PROMPT.format(language=language)),
        Message(
            role="user",
            content=USER_PROMPT.format(
                context=context or "",
                language=language,
                code=code,
            ),
        ),
    ]


def build_request(
    code: str,
    context: str,
    language: str,
    model: str,
    max_tokens: int = 1000,
    temperature: float = 0.7,
) -> ProviderRequest:
    """Provider request for one explanation."""
    return ProviderRequest(
        messages=build_messages(code, context, language),
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
    )
