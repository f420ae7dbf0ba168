from __future__ import annotations

from batchgen.generation.models import TokenUsage

# USD per 1M tokens (input, output), standard tier.
GEMINI_PRICING: dict[str, tuple[float, float]] = {
  "gemini-3-pro-preview": (2.00, 12.00),
  "gemini-3-flash-preview": (0.50, 3.00),
  "gemini-2.5-pro": (1.25, 10.00),
  "gemini-2.5-flash": (0.30, 2.50),
  "gemini-2.5-flash-lite": (0.10, 0.40),
  "gemini-2.0-flash": (0.10, 0.40),
  "gemini-2.0-flash-lite": (0.075, 0.30),
}
FALLBACK_MODEL = "gemini-2.5-flash-lite"
DEFAULT_USD_TO_INR = 83.0


def calculate_cost(usage: TokenUsage, model: str, *, usd_to_inr: float = DEFAULT_USD_TO_INR) -> float:
  """Estimate the INR cost of one call; unknown models are billed at the fallback rate."""
  price_in, price_out = GEMINI_PRICING.get(model.strip().lower(), GEMINI_PRICING[FALLBACK_MODEL])
  usd = (usage.prompt_tokens / 1_000_000) * price_in
  usd += (usage.completion_tokens / 1_000_000) * price_out
  return round(usd * usd_to_inr, 6)
