from dataclasses import dataclass

from usagewatch.models import TokenUsage

_PER_MILLION = 1_000_000


@dataclass(frozen=True, slots=True)
class ModelPricing:
    """
    ModelPricing holds USD rates per million tokens.
    """

    input: "float"
    output: "float"
    cache_write: "float"
    cache_read: "float"


DEFAULT_PRICING = ModelPricing(input=3, output=15, cache_write=3.75, cache_read=0.3)

# keys are normalized model ids (lowercase, dashes)
MODEL_PRICING: "dict[str, ModelPricing]" = {
    "claude-opus-4-5": ModelPricing(5, 25, 6.25, 0.5),
    "claude-opus-4-1": ModelPricing(15, 75, 18.75, 1.5),
    "claude-opus-4": ModelPricing(15, 75, 18.75, 1.5),
    "claude-sonnet-4-5": ModelPricing(3, 15, 3.75, 0.3),
    "claude-sonnet-4": ModelPricing(3, 15, 3.75, 0.3),
    "claude-3-7-sonnet": ModelPricing(3, 15, 3.75, 0.3),
    "claude-3-5-sonnet": ModelPricing(3, 15, 3.75, 0.3),
    "claude-haiku-4-5": ModelPricing(1, 5, 1.25, 0.1),
    "claude-3-5-haiku": ModelPricing(0.8, 4, 1, 0.08),
    "gpt-5": ModelPricing(1.25, 10, 0, 0.125),
    "gpt-5-mini": ModelPricing(0.25, 2, 0, 0.025),
    "gpt-5-codex": ModelPricing(1.25, 10, 0, 0.125),
    "gpt-4.1": ModelPricing(2, 8, 0, 0.5),
    "gpt-4o": ModelPricing(2.5, 10, 0, 0),
    "gpt-4o-mini": ModelPricing(0.15, 0.6, 0, 0),
    "o3": ModelPricing(2, 8, 0, 0.5),
    "gemini-2.5-pro": ModelPricing(1.25, 10, 0, 0.31),
    "gemini-2.5-flash": ModelPricing(0.3, 2.5, 0, 0.075),
}


def _normalize(model_id: "str") -> "str":
    return model_id.strip().lower().replace("_", "-")


def price_for(model_id: "str") -> "ModelPricing":
    """
    looks up the rates for a model id. Exact matches win,
    then the longest key that is a prefix of the id (or that
    the id is a prefix of). Unknown models get DEFAULT_PRICING.
    """
    normalized = _normalize(model_id)
    if normalized in MODEL_PRICING:
        return MODEL_PRICING[normalized]

    candidates = [
        key
        for key in MODEL_PRICING
        if normalized.startswith(key) or key.startswith(normalized)
    ]
    if not normalized or not candidates:
        return DEFAULT_PRICING

    return MODEL_PRICING[max(candidates, key=len)]


def calculate_cost(tokens: "TokenUsage", model_id: "str") -> "float":
    """
    returns the USD cost of a token breakdown. Reasoning
    tokens are billed at the output rate.
    """
    pricing = price_for(model_id)
    return (
        tokens.input * pricing.input
        + tokens.output * pricing.output
        + tokens.reasoning * pricing.output
        + tokens.cache_read * pricing.cache_read
        + tokens.cache_write * pricing.cache_write
    ) / _PER_MILLION
