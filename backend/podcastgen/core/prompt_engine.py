"""
Structured prompt execution.

A `PromptDefinition` bundles a template with an input schema and an optional
output schema (both pydantic models). `PromptEngine.run` validates the
parameters, renders the prompt, calls the language model, strips markdown
fences from the reply, parses the JSON and validates it. Every failure comes
back as a `PromptResult` carrying one of the `PromptError` subclasses; the
engine itself never raises across its boundary.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Protocol, Type, TypeVar, Union, List

from pydantic import BaseModel, ValidationError as PydanticValidationError

from podcastgen.core.errors import (
    InputValidationError,
    ModelError,
    OutputValidationError,
    ParseError,
    PromptError,
)
from podcastgen.core.llm import ChatOptions, ChatResponse

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_OPTIONS = ChatOptions(
    temperature=0.7,
    max_tokens=1024,
    top_p=1.0,
    system_prompt=DEFAULT_SYSTEM_PROMPT,
)

# Length of the raw-output excerpt attached to a ParseError.
SNIPPET_LENGTH = 150

# A whole reply wrapped in one fenced block, with an optional language tag.
# The body match is lazy but anchored to the final fence, so a fence that
# appears inside a JSON string value stays part of the body.
_FENCE_RE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?([\s\S]*?)\s*```$")

P = TypeVar("P", bound=BaseModel)
O = TypeVar("O")


class ChatClient(Protocol):
    async def chat_completion(
        self,
        prompt_or_messages: Union[str, List[Dict[str, str]]],
        options: Optional[ChatOptions] = None,
    ) -> ChatResponse: ...


@dataclass(frozen=True)
class PromptDefinition(Generic[P]):
    """A template plus its input schema and optional output schema."""
    name: str
    input_model: Type[P]
    template: Callable[[P], str]
    output_model: Optional[Type[BaseModel]] = None
    description: str = ""
    default_options: ChatOptions = field(default_factory=ChatOptions)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Prompt name cannot be empty.")


@dataclass
class PromptResult(Generic[O]):
    """
    Outcome of one prompt run: exactly one of `structured_output` or `error` is set.
    """
    structured_output: Optional[O] = None
    error: Optional[PromptError] = None
    usage: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if (self.structured_output is None) == (self.error is None):
            raise ValueError("PromptResult requires exactly one of structured_output or error.")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, output: O, usage: Optional[Dict[str, Any]] = None) -> "PromptResult[O]":
        return cls(structured_output=output, usage=usage or {})

    @classmethod
    def failure(cls, error: PromptError, usage: Optional[Dict[str, Any]] = None) -> "PromptResult[O]":
        return cls(error=error, usage=usage or {})


def strip_code_fence(text: str) -> str:
    """
    Trim `text` and, if the whole reply is one fenced code block, return its body.
    Anything else (no fence, unbalanced fence, prose around the fence) is
    returned trimmed but otherwise untouched.
    """
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def format_validation_errors(error: PydanticValidationError) -> Dict[str, str]:
    """Map pydantic's error list to {'dotted.path': 'message'}."""
    field_errors: Dict[str, str] = {}
    for issue in error.errors():
        path = ".".join(str(part) for part in issue.get("loc", ())) or "root"
        message = issue.get("msg", "invalid value")
        if path in field_errors:
            field_errors[path] = f"{field_errors[path]}; {message}"
        else:
            field_errors[path] = message
    return field_errors


def _describe(field_errors: Dict[str, str]) -> str:
    return "; ".join(f"{path}: {message}" for path, message in field_errors.items())


def schema_instructions(output_model: Type[BaseModel]) -> str:
    """The machine-readable schema block appended to prompts with an output schema."""
    schema = json.dumps(output_model.model_json_schema(), indent=2)
    return (
        "\n\n# Output Instructions\n"
        "You MUST respond ONLY with a single valid JSON object that conforms to the following JSON Schema:\n"
        f"```json\n{schema}\n```\n"
        "Do NOT include any other text, explanations, or markdown formatting outside the JSON object."
    )


class PromptEngine:
    """
    Runs `PromptDefinition`s against a chat client.

    Options are merged as engine defaults < definition defaults < call options.
    """

    def __init__(self, llm: ChatClient, base_options: ChatOptions = DEFAULT_OPTIONS):
        self.llm = llm
        self.base_options = base_options

    def render(self, definition: PromptDefinition, params: BaseModel) -> str:
        """Render the template and, when an output schema exists, the JSON instructions."""
        prompt = definition.template(params)
        if definition.output_model is not None:
            prompt += schema_instructions(definition.output_model)
        return prompt

    async def run(
        self,
        definition: PromptDefinition,
        params: Union[BaseModel, Dict[str, Any]],
        options: Optional[ChatOptions] = None,
    ) -> PromptResult:
        name = definition.name

        # 1. Validate input parameters
        try:
            raw_params = params.model_dump() if isinstance(params, BaseModel) else params
            validated = definition.input_model.model_validate(raw_params)
        except PydanticValidationError as e:
            field_errors = format_validation_errors(e)
            logger.error(f"PromptEngine: Invalid input parameters for prompt '{name}': {_describe(field_errors)}")
            return PromptResult.failure(InputValidationError(
                f"Input validation failed for prompt '{name}': {_describe(field_errors)}",
                field_errors,
                name,
            ))

        # 2. Render and merge options
        try:
            prompt = self.render(definition, validated)
        except Exception as e:
            logger.error(f"PromptEngine: Template rendering failed for prompt '{name}': {e}", exc_info=True)
            return PromptResult.failure(InputValidationError(
                f"Template rendering failed for prompt '{name}': {e}", {"root": str(e)}, name
            ))
        final_options = self.base_options.merged_with(definition.default_options).merged_with(options)
        logger.info(f"PromptEngine: Running prompt '{name}' (temperature={final_options.temperature}, max_tokens={final_options.max_tokens}).")

        # 3. Execute
        try:
            response = await self.llm.chat_completion(prompt, final_options)
        except Exception as e:
            logger.error(f"PromptEngine: LLM call raised for prompt '{name}': {e}", exc_info=True)
            return PromptResult.failure(ModelError(f"LLM execution failed for prompt '{name}': {e}", name))

        if response is None or response.error or not response.content or not response.content.strip():
            reason = (response.error if response is not None else None) or "Content was empty"
            logger.error(f"PromptEngine: LLM execution failed for prompt '{name}': {reason}")
            return PromptResult.failure(
                ModelError(f"LLM execution failed for prompt '{name}': {reason}", name),
                getattr(response, "usage", None),
            )
        usage = response.usage

        # 4. Post-process
        cleaned = strip_code_fence(response.content)
        if definition.output_model is None:
            return PromptResult.success(cleaned, usage)

        # 5. Parse
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as e:
            snippet = response.content[:SNIPPET_LENGTH]
            logger.error(f"PromptEngine: Failed to parse LLM output as JSON for prompt '{name}': {e}. Raw: {snippet!r}")
            return PromptResult.failure(ParseError(
                f"Failed to parse LLM output as JSON for prompt '{name}': {e}. Raw content snippet: \"{snippet}...\"",
                snippet,
                name,
            ), usage)

        # 6. Validate output
        try:
            output = definition.output_model.model_validate(parsed)
        except PydanticValidationError as e:
            field_errors = format_validation_errors(e)
            logger.error(f"PromptEngine: LLM output failed schema validation for prompt '{name}': {_describe(field_errors)}")
            return PromptResult.failure(OutputValidationError(
                f"LLM output failed schema validation for prompt '{name}': {_describe(field_errors)}",
                field_errors,
                name,
            ), usage)

        logger.info(f"PromptEngine: Parsed and validated structured output for prompt '{name}'.")
        return PromptResult.success(output, usage)
