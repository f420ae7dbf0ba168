"""Soft validation of generated items against exam formatting rules.

Findings are reported, never enforced: the orchestrator logs them and keeps every item so the
reviewer sees the full batch.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

Severity = Literal["error", "warning"]
Item = dict[str, Any]

ANSWER_KEYS = ("(1)", "(2)", "(3)", "(4)")
DOUBLE_NEGATIVE_PATTERNS = ("not in", "not un", "not im", "not dis", "not non")
MATCH_ENDING = "Choose the correct answer from the options given below"
ASSERTION_ENDING = "In the light of the above statements"
_CODED_OPTION_RE = re.compile(r"[A-D]-[I-V]+")

_META_REFERENCE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
  (re.compile(r"according to (ncert|the study material|the provided material|the material|the notes|who)", re.IGNORECASE), 'Contains meta-reference "according to..."'),
  (re.compile(r"as per (ncert|the study material|the provided material|the material|the notes)", re.IGNORECASE), 'Contains meta-reference "as per..."'),
  (re.compile(r"as mentioned in (ncert|the study material|the provided material|the material|the notes)", re.IGNORECASE), 'Contains meta-reference "as mentioned in..."'),
  (re.compile(r"the provided material", re.IGNORECASE), 'References "the provided material"'),
  (re.compile(r"in the (given|provided) (material|notes)", re.IGNORECASE), 'References "in the given/provided material"'),
  (re.compile(r"\(\s*(note|hint|remark|comment|explanation|source|reference)\s*:.*?\)", re.IGNORECASE), "Contains an editorial note in parentheses"),
  (re.compile(r"\(\s*(नोट|टिप्पणी|ध्यान दें|सूचना|संकेत)\s*:.*?\)"), "Contains a Hindi editorial note in parentheses"),
)


@dataclass(frozen=True)
class ValidationIssue:
  severity: Severity
  message: str


@dataclass
class ValidationReport:
  errors: list[str] = field(default_factory=list)
  warnings: list[str] = field(default_factory=list)

  @property
  def valid(self) -> bool:
    return not self.errors

  def extend(self, issues: Sequence[ValidationIssue]) -> None:
    for issue in issues:
      (self.errors if issue.severity == "error" else self.warnings).append(issue.message)


Validator = Callable[[Sequence[Item]], list[ValidationIssue]]


def _label(item: Item, position: int) -> str:
  return f"Q{item.get('questionNumber') or position}"


def _options(item: Item) -> list[str]:
  raw = item.get("options")
  if isinstance(raw, dict):
    return [str(value or "") for value in raw.values()]
  if isinstance(raw, list):
    return [str(value or "") for value in raw]
  return []


def _text(item: Item) -> str:
  return str(item.get("questionText") or "")


def check_prohibited_patterns(items: Sequence[Item]) -> list[ValidationIssue]:
  issues: list[ValidationIssue] = []
  for position, item in enumerate(items, start=1):
    label = _label(item, position)
    stem = _text(item)
    lowered = stem.lower()
    options = [option.lower() for option in _options(item)]

    if " always " in lowered or " never " in lowered:
      issues.append(ValidationIssue("error", f'{label}: Contains prohibited "Always" or "Never"'))
    for pattern, message in _META_REFERENCE_PATTERNS:
      if pattern.search(stem):
        issues.append(ValidationIssue("error", f"{label}: {message}"))
    for pattern in DOUBLE_NEGATIVE_PATTERNS:
      if pattern in lowered:
        issues.append(ValidationIssue("error", f'{label}: Possible double negative detected: "{pattern}"'))
    if any("none of the above" in option or "all of the above" in option for option in options):
      issues.append(ValidationIssue("error", f'{label}: Contains prohibited "None/All of the above"'))
    if item.get("structuralForm") not in {"multiStatement", "assertionReason"}:
      if any("both" in option and ("and" in option or "&" in option) for option in options):
        issues.append(ValidationIssue("error", f'{label}: Contains "Both...and" outside multi-statement/assertion-reason format'))
    if options:
      lengths = [len(option) for option in options]
      if max(lengths) > min(lengths) * 3:
        issues.append(ValidationIssue("error", f"{label}: Lopsided option lengths (max: {max(lengths)}, min: {min(lengths)})"))
      if len(set(options)) < 4:
        issues.append(ValidationIssue("error", f"{label}: Non-mutually exclusive options (duplicates found)"))
  return issues


def check_match_format(items: Sequence[Item]) -> list[ValidationIssue]:
  issues: list[ValidationIssue] = []
  for position, item in enumerate(items, start=1):
    if item.get("structuralForm") != "matchFollowing":
      continue
    label = _label(item, position)
    text = _text(item)
    if "Column I" not in text or "Column II" not in text:
      issues.append(ValidationIssue("error", f"{label}: Match question missing Column I/II headers"))
    if MATCH_ENDING not in text:
      issues.append(ValidationIssue("error", f"{label}: Match question missing required ending phrase"))
    # Coded combinations usually live in the options; the stem may also carry them.
    if not _CODED_OPTION_RE.search(text) and not any(_CODED_OPTION_RE.search(option) for option in _options(item)):
      issues.append(ValidationIssue("error", f"{label}: Match question missing coded options (e.g., A-III, B-I)"))
    has_letters = all(marker in text for marker in ("A.", "B.", "C.", "D."))
    has_numerals = all(marker in text for marker in ("I.", "II.", "III.", "IV."))
    if not has_letters or not has_numerals:
      issues.append(ValidationIssue("error", f"{label}: Match question not using 4x4 matrix format"))
  return issues


def check_assertion_reason(items: Sequence[Item]) -> list[ValidationIssue]:
  issues: list[ValidationIssue] = []
  for position, item in enumerate(items, start=1):
    if item.get("structuralForm") != "assertionReason":
      continue
    label = _label(item, position)
    text = _text(item)
    if "Assertion (A):" not in text and "Assertion(A):" not in text:
      issues.append(ValidationIssue("error", f'{label}: Assertion-Reason missing "Assertion (A):" label'))
    if "Reason (R):" not in text and "Reason(R):" not in text:
      issues.append(ValidationIssue("error", f'{label}: Assertion-Reason missing "Reason (R):" label'))
    if ASSERTION_ENDING not in text:
      issues.append(ValidationIssue("error", f"{label}: Assertion-Reason missing required ending phrase"))
    haystack = " ".join([text, *_options(item)]).lower()
    if "explanation" not in haystack:
      issues.append(ValidationIssue("error", f'{label}: Assertion-Reason should mention "explanation" in options'))
  return issues


def check_answer_balance(items: Sequence[Item]) -> list[ValidationIssue]:
  if not items:
    return []
  issues: list[ValidationIssue] = []
  total = len(items)
  counts = {key: 0 for key in ANSWER_KEYS}
  for item in items:
    answer = item.get("correctAnswer")
    if answer in counts:
      counts[answer] += 1

  expected_min = math.floor(total * 0.20)
  expected_max = math.ceil(total * 0.30)
  for option, count in counts.items():
    if count < expected_min or count > expected_max:
      issues.append(ValidationIssue("warning", f"Answer key imbalance: Option {option} appears {count}/{total} times ({count / total * 100:.1f}%)"))

  run = 1
  previous = items[0].get("correctAnswer")
  for index in range(1, total):
    current = items[index].get("correctAnswer")
    if current == previous:
      run += 1
      if run > 3:
        issues.append(ValidationIssue("warning", f"Consecutive same answer violation: {run} consecutive {previous} at Q{index - run + 2}-Q{index + 1}"))
        run = 1
    else:
      run = 1
      previous = current
  return issues


def check_cognitive_load(items: Sequence[Item]) -> list[ValidationIssue]:
  issues: list[ValidationIssue] = []
  for index, item in enumerate(items[:3]):
    if item.get("cognitiveLoad") != "low":
      issues.append(ValidationIssue("warning", f"Q{index + 1}: Should be low-density warm-up, but is {item.get('cognitiveLoad')}-density"))

  consecutive_high = 0
  for index, item in enumerate(items):
    if item.get("cognitiveLoad") == "high":
      consecutive_high += 1
      if consecutive_high > 2:
        issues.append(ValidationIssue("warning", f"Q{index + 1}: More than 2 consecutive high-density questions (violation at position {index + 1})"))
        consecutive_high = 0
    else:
      consecutive_high = 0
  return issues


def check_basic_quality(items: Sequence[Item]) -> list[ValidationIssue]:
  issues: list[ValidationIssue] = []
  for position, item in enumerate(items, start=1):
    label = _label(item, position)
    options = _options(item)
    if len(options) != 4:
      issues.append(ValidationIssue("warning", f"{label}: Should have exactly 4 options, found {len(options)}"))
    if any(not option.strip() for option in options):
      issues.append(ValidationIssue("warning", f"{label}: One or more options are empty"))
    if item.get("correctAnswer") not in ANSWER_KEYS:
      issues.append(ValidationIssue("warning", f"{label}: Invalid correct answer format: {item.get('correctAnswer')}"))
    if not _text(item).strip():
      issues.append(ValidationIssue("warning", f"{label}: Question text is empty"))
    if len(str(item.get("explanation") or "").strip()) < 10:
      issues.append(ValidationIssue("warning", f"{label}: Explanation is missing or too short"))
  return issues


DEFAULT_VALIDATORS: tuple[Validator, ...] = (check_prohibited_patterns, check_match_format, check_assertion_reason, check_answer_balance, check_cognitive_load)


def validate_items(items: Sequence[Item], validators: Sequence[Validator] = DEFAULT_VALIDATORS) -> ValidationReport:
  """Run the protocol's validators plus the basic quality checks."""
  report = ValidationReport()
  for validator in validators:
    report.extend(validator(items))
  report.extend(check_basic_quality(items))
  return report
