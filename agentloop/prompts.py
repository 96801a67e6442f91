"""Prompt templates.

Templates use :meth:`str.format` placeholders (``{name}``); literal braces are
written doubled. Any variable can be fixed ahead of time with ``partial()``,
either to a value or to a zero-argument callable evaluated at format time.

- :class:`PromptTemplate`: one text template
- :class:`FewShotPromptTemplate`: prefix, formatted examples, suffix
- :class:`PipelinePromptTemplate`: named blocks fed into a final template
- :class:`ChatPromptTemplate`: a list of role templates, fixed messages and
  :class:`MessagesPlaceholder` slots, formatted into :class:`Message` objects
"""

import copy
import string
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence

from agentloop.messages import Message

# Role aliases accepted in chat templates and placeholder values
ROLES = {
    "system": "system",
    "human": "user",
    "user": "user",
    "ai": "assistant",
    "assistant": "assistant",
}

_CONSTRUCTORS = {
    "system": Message.system,
    "user": Message.user,
    "assistant": Message.assistant,
}


def template_variables(template: str) -> list[str]:
    """Names of the placeholders in ``template``, in order of appearance."""
    names = []
    for _, field, _, _ in string.Formatter().parse(template):
        if field is None:
            continue
        name = field.split(".", 1)[0].split("[", 1)[0]
        if not name:
            raise ValueError(f"positional placeholder in template: {template[:40]!r}")
        if name not in names:
            names.append(name)
    return names


class BasePromptTemplate(ABC):
    partial_variables: dict

    @abstractmethod
    def _variables(self) -> list[str]:
        """Every variable the template needs, partial ones included."""

    @property
    def input_variables(self) -> list[str]:
        return [v for v in self._variables() if v not in self.partial_variables]

    def partial(self, **kwargs) -> "BasePromptTemplate":
        """Return a copy with some variables filled in."""
        new = copy.copy(self)
        new.partial_variables = {**self.partial_variables, **kwargs}
        return new

    def _values(self, kwargs: Mapping) -> dict:
        values = {k: v() if callable(v) else v for k, v in self.partial_variables.items()}
        values.update(kwargs)
        missing = [v for v in self._required() if v not in values]
        if missing:
            raise ValueError(f"missing prompt variables: {', '.join(missing)}")
        return values

    def _required(self) -> list[str]:
        return self._variables()


class PromptTemplate(BasePromptTemplate):
    """A single text template.

    >>> PromptTemplate("Hello {name}").format(name="Ana")
    'Hello Ana'
    """

    def __init__(self, template: str, partial_variables: Mapping | None = None):
        self.template = template
        self.partial_variables = dict(partial_variables or {})
        self._names = template_variables(template)

    @classmethod
    def from_template(cls, template: str) -> "PromptTemplate":
        return cls(template)

    def _variables(self) -> list[str]:
        return list(self._names)

    def format(self, **kwargs) -> str:
        return self.template.format(**self._values(kwargs))

    def __repr__(self) -> str:
        return f"PromptTemplate({self.template[:40]!r})"


class FewShotPromptTemplate(BasePromptTemplate):
    """Prefix, then each example rendered with ``example_prompt``, then suffix.

    Only the prefix and suffix take variables; examples are formatted with
    their own values.
    """

    def __init__(
        self,
        examples: Iterable[Mapping],
        example_prompt: PromptTemplate,
        prefix: str = "",
        suffix: str = "",
        separator: str = "\n\n",
        partial_variables: Mapping | None = None,
    ):
        self.examples = [dict(e) for e in examples]
        self.example_prompt = example_prompt
        self.prefix = PromptTemplate(prefix)
        self.suffix = PromptTemplate(suffix)
        self.separator = separator
        self.partial_variables = dict(partial_variables or {})

    def _variables(self) -> list[str]:
        names = self.prefix._variables()
        names += [v for v in self.suffix._variables() if v not in names]
        return names

    def format(self, **kwargs) -> str:
        values = self._values(kwargs)
        pieces = [self.prefix.format(**values)]
        pieces += [self.example_prompt.format(**example) for example in self.examples]
        pieces.append(self.suffix.format(**values))
        return self.separator.join(p for p in pieces if p)


class PipelinePromptTemplate(BasePromptTemplate):
    """Formats named blocks in order and passes them to a final template.

    A block sees the caller's values plus every block formatted before it.
    """

    def __init__(
        self,
        final_prompt: PromptTemplate,
        pipeline_prompts: Sequence[tuple[str, BasePromptTemplate]],
        partial_variables: Mapping | None = None,
    ):
        self.final_prompt = final_prompt
        self.pipeline_prompts = list(pipeline_prompts)
        self.partial_variables = dict(partial_variables or {})

    def _variables(self) -> list[str]:
        produced = set()
        names = []
        for name, prompt in self.pipeline_prompts:
            names += [v for v in prompt.input_variables if v not in produced and v not in names]
            produced.add(name)
        names += [
            v for v in self.final_prompt.input_variables if v not in produced and v not in names
        ]
        return names

    def format(self, **kwargs) -> str:
        values = self._values(kwargs)
        for name, prompt in self.pipeline_prompts:
            values[name] = prompt.format(**values)
        return self.final_prompt.format(**values)


class MessagesPlaceholder:
    """Slot in a chat template filled with a list of messages at format time.

    Values may be :class:`Message` objects, ``(role, content)`` pairs or
    ``{"role": ..., "content": ...}`` dicts. Roles accept the ``human`` and
    ``ai`` aliases.
    """

    def __init__(self, variable_name: str, optional: bool = False):
        self.variable_name = variable_name
        self.optional = optional

    def format_messages(self, values: Mapping) -> list[Message]:
        if self.variable_name not in values:
            if self.optional:
                return []
            raise ValueError(f"missing prompt variables: {self.variable_name}")
        return [_to_message(item) for item in values[self.variable_name]]


def _to_message(item) -> Message:
    if isinstance(item, Message):
        return item
    if isinstance(item, Mapping):
        role, content = item["role"], item["content"]
    else:
        role, content = item
    return _CONSTRUCTORS[_role(role)](content)


def _role(role: str) -> str:
    try:
        return ROLES[role]
    except KeyError:
        raise ValueError(f"unknown message role: {role}") from None


class ChatPromptTemplate(BasePromptTemplate):
    """A conversation template.

    Build one with :meth:`from_messages` from ``(role, template)`` pairs,
    :class:`MessagesPlaceholder` slots and fixed :class:`Message` objects::

        prompt = ChatPromptTemplate.from_messages([
            ("system", "You are a {persona}."),
            MessagesPlaceholder("history"),
            ("human", "{question}"),
        ])
        messages = prompt.format_messages(persona="tutor", history=[], question="Hi")
    """

    def __init__(self, parts: Sequence, partial_variables: Mapping | None = None):
        self.parts = list(parts)
        self.partial_variables = dict(partial_variables or {})

    @classmethod
    def from_messages(cls, parts: Iterable) -> "ChatPromptTemplate":
        converted = []
        for part in parts:
            if isinstance(part, (Message, MessagesPlaceholder)):
                converted.append(part)
            else:
                role, template = part
                if isinstance(template, str):
                    template = PromptTemplate(template)
                converted.append((_role(role), template))
        return cls(converted)

    def _variables(self) -> list[str]:
        names = []
        for part in self.parts:
            if isinstance(part, MessagesPlaceholder):
                new = [part.variable_name]
            elif isinstance(part, Message):
                new = []
            else:
                new = part[1].input_variables
            names += [v for v in new if v not in names]
        return names

    def _required(self) -> list[str]:
        optional = {
            p.variable_name for p in self.parts
            if isinstance(p, MessagesPlaceholder) and p.optional
        }
        return [v for v in self._variables() if v not in optional]

    def format_messages(self, **kwargs) -> list[Message]:
        values = self._values(kwargs)
        messages = []
        for part in self.parts:
            if isinstance(part, MessagesPlaceholder):
                messages.extend(part.format_messages(values))
            elif isinstance(part, Message):
                messages.append(part)
            else:
                role, template = part
                messages.append(_CONSTRUCTORS[role](template.format(**values)))
        return messages
