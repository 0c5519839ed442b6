"""LLM tool definition for ``read_web_page``.

Exposes PageReader.read to a function-calling chat model. The schema follows
the OpenAI tools format; ``call_read_web_page`` validates the model-supplied
arguments before dispatching.
"""

from __future__ import annotations

from typing import Any, Final

from pagereader.reader import PageReader

TOOL_READ_WEB_PAGE: Final[str] = "read_web_page"

READ_WEB_PAGE_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": TOOL_READ_WEB_PAGE,
        "description": (
            "Reads a web page when given a url and it will try to return content that is "
            "relevant to an input question. The question is optional and can be omitted only "
            "if there is no question to answer, in such case the returned text will be the "
            "first paragraphs from that page."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "Absolute http(s) URL of the page to read.",
                    "minLength": 1,
                },
                "optionalQuestion": {
                    "type": "string",
                    "description": "Question the returned content should help answer.",
                },
            },
            "required": ["url"],
            "additionalProperties": False,
        },
    },
}


async def call_read_web_page(reader: PageReader, arguments: dict[str, Any]) -> str:
    """Validate tool-call *arguments* and run ``reader.read``.

    Raises:
        ValueError: If ``url`` is missing or either argument is not a string,
            or if unexpected arguments are present.
    """
    unexpected = set(arguments) - {"url", "optionalQuestion"}
    if unexpected:
        raise ValueError(
            f"{TOOL_READ_WEB_PAGE} got unexpected arguments: {', '.join(sorted(unexpected))}"
        )

    url = arguments.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ValueError(f"{TOOL_READ_WEB_PAGE} requires a non-empty 'url' string.")

    question = arguments.get("optionalQuestion")
    if question is not None and not isinstance(question, str):
        raise ValueError(f"{TOOL_READ_WEB_PAGE} 'optionalQuestion' must be a string.")

    return await reader.read(url, question)
