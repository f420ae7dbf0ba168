"""Unit tests for the soft item validators."""

from __future__ import annotations

from batchgen.generation.validator import check_answer_balance, check_assertion_reason, check_basic_quality, check_cognitive_load, check_match_format, check_prohibited_patterns, validate_items
from fakes import make_question, make_questions


def _messages(issues) -> list[str]:
  return [issue.message for issue in issues]


def test_clean_batch_has_no_errors() -> None:
  report = validate_items(make_questions(8))
  assert report.valid
  assert report.errors == []


def test_prohibited_patterns_are_reported_as_errors() -> None:
  item = make_question(1, questionText="According to NCERT, which cell organelle is always present?")
  item["options"] = {"(1)": "None of the above", "(2)": "Ribosome", "(3)": "Ribosome", "(4)": "Nucleus"}
  messages = _messages(check_prohibited_patterns([item]))
  assert any('"Always" or "Never"' in message for message in messages)
  assert any("according to" in message for message in messages)
  assert any("None/All of the above" in message for message in messages)
  assert any("duplicates found" in message for message in messages)
  assert all(issue.severity == "error" for issue in check_prohibited_patterns([item]))


def test_both_and_allowed_only_for_multi_statement_forms() -> None:
  options = {"(1)": "Both A and B", "(2)": "Only A here", "(3)": "Only B here", "(4)": "Neither one"}
  standard = make_question(1, options=options)
  statement = make_question(2, options=options, structuralForm="multiStatement")
  assert any("Both...and" in message for message in _messages(check_prohibited_patterns([standard])))
  assert not any("Both...and" in message for message in _messages(check_prohibited_patterns([statement])))


def test_match_format_requires_matrix_and_coded_options() -> None:
  good = make_question(
    1,
    structuralForm="matchFollowing",
    questionText="Match Column I with Column II:\nColumn I  Column II\nA. x  I. p\nB. y  II. q\nC. z  III. r\nD. w  IV. s\nChoose the correct answer from the options given below:",
    options={"(1)": "A-III, B-I, C-IV, D-II", "(2)": "A-I, B-II, C-III, D-IV", "(3)": "A-II, B-III, C-I, D-IV", "(4)": "A-IV, B-III, C-II, D-I"},
  )
  bad = make_question(2, structuralForm="matchFollowing", questionText="Match the terms")
  assert check_match_format([good]) == []
  messages = _messages(check_match_format([bad]))
  assert any("Column I/II" in message for message in messages)
  assert any("coded options" in message for message in messages)


def test_assertion_reason_labels_and_ending() -> None:
  item = make_question(1, structuralForm="assertionReason", questionText="Assertion (A): x. Reason (R): y.")
  messages = _messages(check_assertion_reason([item]))
  assert any("ending phrase" in message for message in messages)
  assert any('"explanation"' in message for message in messages)
  assert not any("Assertion (A):" in message for message in messages)


def test_answer_balance_flags_long_runs_as_warnings() -> None:
  items = [make_question(n, answer="(1)") for n in range(1, 6)]
  issues = check_answer_balance(items)
  assert all(issue.severity == "warning" for issue in issues)
  assert any("Consecutive same answer violation: 4 consecutive (1)" in issue.message for issue in issues)
  assert any("Option (1) appears 5/5" in issue.message for issue in issues)


def test_cognitive_load_warmup_and_high_runs() -> None:
  items = [make_question(n, cognitiveLoad="high") for n in range(1, 5)]
  messages = _messages(check_cognitive_load(items))
  assert sum("warm-up" in message for message in messages) == 3
  assert any("More than 2 consecutive high-density" in message for message in messages)


def test_basic_quality_is_always_applied() -> None:
  item = make_question(1, options={"(1)": "a", "(2)": "", "(3)": "c"}, correctAnswer="A", explanation="")
  report = validate_items([item], validators=())
  assert report.errors == []
  assert any("exactly 4 options" in message for message in report.warnings)
  assert any("Invalid correct answer" in message for message in report.warnings)
  assert any("Explanation is missing" in message for message in report.warnings)
  assert check_basic_quality(make_questions(1)) == []
