"""Structured output helpers.

Two ways to get structured data out of a model:

- ask for JSON in the prompt and parse the text with :func:`parse_json` or
  :func:`parse_model`, or for XML with :func:`parse_xml`
- bind a single tool whose parameters are a pydantic model's JSON schema and
  read the arguments of the call, with :func:`extract`
"""

import json
import re
from typing import TypeVar
from xml.etree import ElementTree

from pydantic import BaseModel, ValidationError

from agentloop.errors import OutputParserError
from agentloop.messages import Message
from agentloop.providers.base import Provider
from agentloop.tools.base import Tool

M = TypeVar("M", bound=BaseModel)

_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def parse_json(text: str):
    """Decode JSON from model output, tolerating Markdown code fences."""
    if match := _FENCE.search(text):
        text = match.group(1)
    text = text.strip()
    if not text:
        raise OutputParserError("empty output, expected JSON")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise OutputParserError(f"invalid JSON output: {e}") from e


def parse_model(text: str, model_cls: type[M]) -> M:
    """Parse JSON output and validate it against a pydantic model."""
    data = parse_json(text)
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise OutputParserError(f"output does not match {model_cls.__name__}: {e}") from e


def format_instructions(model_cls: type[BaseModel]) -> str:
    """Prompt text asking for JSON that matches the model's schema."""
    schema = json.dumps(model_cls.model_json_schema(), ensure_ascii=False, indent=2)
    return (
        "Respond only with a JSON object that conforms to this JSON schema, "
        f"without any other text:\n```json\n{schema}\n```"
    )


_XML_FENCE = re.compile(r"```(?:xml|XML)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def parse_xml(text: str) -> dict:
    """Decode XML from model output into nested dicts and lists.

    A leaf element becomes ``{tag: text}``; an element with children becomes
    ``{tag: [child, ...]}``::

        <person><name>Ada</name><born>1815</born></person>
        -> {"person": [{"name": "Ada"}, {"born": "1815"}]}
    """
    if match := _XML_FENCE.search(text):
        text = match.group(1)
    text = text.strip()
    # Models often put a sentence before the document
    if (start := text.find("<")) > 0:
        text = text[start:]
    if not text:
        raise OutputParserError("empty output, expected XML")
    try:
        root = ElementTree.fromstring(text)
    except ElementTree.ParseError as e:
        raise OutputParserError(f"invalid XML output: {e}") from e
    return _element_to_dict(root)


def _element_to_dict(element: ElementTree.Element) -> dict:
    children = list(element)
    if not children:
        return {element.tag: (element.text or "").strip()}
    return {element.tag: [_element_to_dict(child) for child in children]}


def xml_format_instructions(tags: list[str] | None = None) -> str:
    """Prompt text asking for a well-formed XML answer."""
    text = (
        "Respond only with a well-formed XML document, without any other text. "
        "Wrap the whole answer in a single root element."
    )
    if tags:
        text += f" Use these tags: {', '.join(tags)}."
    return text



class SchemaTool(Tool):
    """A tool whose only purpose is to carry structured arguments."""

    def __init__(self, model_cls: type[BaseModel], name: str | None = None,
                 description: str | None = None):
        self.model_cls = model_cls
        self.name = name or _snake_case(model_cls.__name__)
        self.description = description or (model_cls.__doc__ or "").strip() or (
            f"Record a {model_cls.__name__}."
        )
        self.parameters = model_cls.model_json_schema()

    def execute(self, **kwargs) -> str:
        return self.model_cls.model_validate(kwargs).model_dump_json()


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


async def extract(
    provider: Provider,
    prompt: str,
    model_cls: type[M],
    name: str | None = None,
    description: str | None = None,
) -> M:
    """Have the model fill in ``model_cls`` through a single bound tool."""
    tool = SchemaTool(model_cls, name=name, description=description)
    messages = [
        Message.system(f"Use the {tool.name} tool to answer."),
        Message.user(prompt),
    ]
    reply = await provider.complete(messages, [tool])

    for call in reply.tool_calls:
        if call.name == tool.name:
            try:
                return model_cls.model_validate(call.args)
            except ValidationError as e:
                raise OutputParserError(
                    f"tool arguments do not match {model_cls.__name__}: {e}"
                ) from e

    # Some models answer in text even when a tool is bound
    if reply.content:
        return parse_model(reply.content, model_cls)
    raise OutputParserError(f"model did not call {tool.name}")
