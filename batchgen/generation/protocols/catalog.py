"""Built-in exam protocols. Prompt bodies are data; only counts and names are substituted."""

from __future__ import annotations

from string import Template

from batchgen.generation.protocols.base import CognitiveLoadConstraints, CognitiveLoadMix, DifficultyMapping, TemplateProtocol
from batchgen.generation.validator import check_answer_balance, check_assertion_reason, check_cognitive_load, check_match_format, check_prohibited_patterns

_NEET_FORMS = {"standardMCQ": 0.50, "matchFollowing": 0.20, "assertionReason": 0.08, "negativePhrasing": 0.12, "multiStatement": 0.10}

BILINGUAL_BLOCK = """**LANGUAGE**: BILINGUAL MODE. Generate every question in BOTH Hindi and English.
- Hindi is PRIMARY: questionText, options and explanation are pure Hindi in Devanagari script.
- English is SECONDARY: questionText_en, options_en and explanation_en are pure English.
- NEVER put English translations in parentheses inside Hindi fields, or Hindi inside English fields.
- Use proper Hindi words, not transliterated English (अधिपत्र, not वरंट)."""

ENGLISH_BLOCK = "**LANGUAGE**: All questions, options and explanations in English."

HINDI_BLOCK = "**LANGUAGE**: ALL questions, options and explanations MUST be in Hindi (हिंदी), Devanagari script."

OUTPUT_FORMAT = """## OUTPUT FORMAT (JSON)

Return ONLY a JSON object, with no markdown fences and no text before or after it:
{
  "questions": [
    {
      "questionNumber": 1,
      "questionText": "Full question stem",
      "archetype": "<archetype key>",
      "structuralForm": "<structural form key>",
      "cognitiveLoad": "low" | "medium" | "high",
      "correctAnswer": "(1)" | "(2)" | "(3)" | "(4)",
      "options": {"(1)": "...", "(2)": "...", "(3)": "...", "(4)": "..."},
      "explanation": "Why the correct answer is right and the others are wrong",
      "difficulty": "easy" | "medium" | "hard"
    }
  ]
}
In bilingual mode also include questionText_en, options_en and explanation_en."""

NEET_BIOLOGY_PROMPT = Template(
  """You are an expert NEET Biology question paper generator. Generate $question_count high-quality NEET-style Biology questions for the chapter: "$chapter_name".

This is part of a $total_questions-question paper. Follow the NEET Biology protocol strictly.

$language_block

## QUESTION ARCHETYPE DISTRIBUTION (Target Counts)
- $archetype_directRecall Direct Recall: single-concept facts, definitions, terminology.
- $archetype_directApplication Direct Application: single-step application to a straightforward scenario.
- $archetype_integrative Integrative/Multi-concept: connect two or more concepts across topics.
- $archetype_discriminator Conceptual Discriminator: separate subtle distinctions, exploit known misconceptions.
- $archetype_exceptionOutlier Exception/Outlier Logic: exceptions to general rules and special cases.
Every question falls into exactly ONE archetype.

## STRUCTURAL FORMS DISTRIBUTION (Target Counts)
- $form_standardMCQ Standard 4-option MCQ.
- $form_matchFollowing Match-the-Following: a 4x4 matrix with coded options.
- $form_assertionReason Assertion-Reason: two statements, four options about truth and linkage.
- $form_negativePhrasing Negative Phrasing: "Which is NOT correct", "incorrect statement".
- $form_multiStatement Multi-Statement Combination: 4-5 statements, select the correct coded group.
Every question uses exactly ONE structural form.

## MATCH-THE-FOLLOWING TEMPLATE
questionText must contain the complete matrix:
Match Column I with Column II:
Column I                 Column II
A. [Term 1]              I. [Description 1]
B. [Term 2]              II. [Description 2]
C. [Term 3]              III. [Description 3]
D. [Term 4]              IV. [Description 4]
Choose the correct answer from the options given below:
Options contain ONLY coded combinations such as "A-III, B-I, C-IV, D-II".

## ASSERTION-REASON TEMPLATE
questionText contains "Assertion (A): ...", "Reason (R): ..." and ends with
"In the light of the above statements, choose the correct answer from the options given below:"
(1) Both A and R are true and R is the correct explanation of A
(2) Both A and R are true but R is NOT the correct explanation of A
(3) A is true but R is false
(4) A is false but R is true

## CO-OCCURRENCE RULES
- Integrative archetype uses Multi-Statement or Assertion-Reason.
- Exception/Outlier archetype prefers Negative Phrasing.
- Match-the-Following prefers Direct Recall content.

## COGNITIVE LOAD SEQUENCING
- First $warmup_count questions: low-density Direct Recall warm-up.
- Never place more than $max_consecutive_high high-density questions consecutively.
- High-density means a stem over 50 words, 3+ decisions, or Match-the-Following.

## FROZEN PROHIBITIONS
$prohibitions
- Never reference sources in a stem ("according to NCERT", "as per the study material"). Write direct, authoritative statements.

## OPTIONS AND ANSWER KEY
- All 4 options of similar length and grammatical structure, mutually exclusive, with plausible distractors.
- Distribute correct answers roughly 25% each across (1)-(4); never more than 3 consecutive identical answers.
- Use exact NCERT terminology where possible.

"""
  + OUTPUT_FORMAT
  + """

Generate $question_count questions now."""
)

RAJASTHAN_GK_PROMPT = Template(
  """You are an expert REET Mains question paper setter for Rajasthan General Knowledge. Generate $question_count questions for the topic: "$chapter_name".

This is part of a $total_questions-question paper.

$language_block

## QUESTION ARCHETYPE DISTRIBUTION (Target Counts)
- $archetype_singleFactRecall Single-Fact Recall: dates, names, places, facts.
- $archetype_comparative Comparative/Superlative: largest, oldest, first, highest.
- $archetype_exceptionNegative Exception/Negative: "NOT", "EXCEPT".
- $archetype_fillInBlank Fill-in-the-Blank: sentence completion.
- $archetype_definitional Definitional: "is called", "is known as".
- $archetype_causal Causal/Conceptual: why and how.
- $archetype_commonality Commonality: "What is common in...".

## STRUCTURE
- All $form_standard4OptionMCQ questions are standard 4-option MCQs.
- First $warmup_count questions are low-density warm-ups; never more than $max_consecutive_high high-density questions in a row.

## PROHIBITIONS
$prohibitions

## ACCURACY
- Use current district names, schemes and policies. Factual accuracy about Rajasthan is critical.
- Distribute correct answers evenly; never more than 3 consecutive identical answers.

"""
  + OUTPUT_FORMAT
  + """

Generate $question_count questions now."""
)


NEET_BIOLOGY = TemplateProtocol(
  protocol_id="neet-biology",
  name="NEET Biology",
  stream_name="NEET",
  subject_name="Biology",
  difficulty_mappings={
    "easy": DifficultyMapping(
      archetypes={"directRecall": 0.65, "directApplication": 0.14, "integrative": 0.08, "discriminator": 0.06, "exceptionOutlier": 0.07},
      structural_forms=_NEET_FORMS,
      cognitive_load=CognitiveLoadMix(low=0.40, medium=0.49, high=0.11),
    ),
    "balanced": DifficultyMapping(
      archetypes={"directRecall": 0.60, "directApplication": 0.12, "integrative": 0.10, "discriminator": 0.08, "exceptionOutlier": 0.10},
      structural_forms=_NEET_FORMS,
      cognitive_load=CognitiveLoadMix(low=0.40, medium=0.45, high=0.15),
    ),
    "hard": DifficultyMapping(
      archetypes={"directRecall": 0.58, "directApplication": 0.10, "integrative": 0.12, "discriminator": 0.12, "exceptionOutlier": 0.08},
      structural_forms=_NEET_FORMS,
      cognitive_load=CognitiveLoadMix(low=0.40, medium=0.44, high=0.16),
    ),
  },
  prohibitions=(
    'NEVER use "Always" or "Never" in question stems',
    "NEVER use double negatives",
    'NEVER include "None of the above" or "All of the above"',
    "NEVER create subset inclusion (Option A contained in Option B)",
    "NEVER place more than 2 consecutive high-density questions",
    "NEVER create lopsided visual weight (1 long + 3 short options)",
    "NEVER use ambiguous pronouns without clear referents",
    "NEVER create non-mutually exclusive options",
    "NEVER create Match questions without 4x4 matrix and coded options",
    "NEVER violate max-3-consecutive same answer key",
  ),
  cognitive_load_constraints=CognitiveLoadConstraints(max_consecutive_high=2, warmup_percentage=0.1),
  prompt_template=NEET_BIOLOGY_PROMPT,
  monolingual_language_block=ENGLISH_BLOCK,
  bilingual_language_block=BILINGUAL_BLOCK,
  validators=(check_prohibited_patterns, check_match_format, check_assertion_reason, check_answer_balance, check_cognitive_load),
)

_RAJASTHAN_GK_FORMS = {"standard4OptionMCQ": 1.00}

REET_MAINS_L2_RAJASTHAN_GK = TemplateProtocol(
  protocol_id="reet-mains-l2-rajasthan-gk",
  name="REET Mains Level 2 Rajasthan General Knowledge",
  stream_name="REET Mains Level 2",
  subject_name="Rajasthan General Knowledge",
  difficulty_mappings={
    "easy": DifficultyMapping(
      archetypes={"singleFactRecall": 0.75, "comparative": 0.12, "exceptionNegative": 0.08, "fillInBlank": 0.10, "definitional": 0.08, "causal": 0.02, "commonality": 0.02},
      structural_forms=_RAJASTHAN_GK_FORMS,
      cognitive_load=CognitiveLoadMix(low=0.60, medium=0.30, high=0.10),
    ),
    "balanced": DifficultyMapping(
      archetypes={"singleFactRecall": 0.68, "comparative": 0.16, "exceptionNegative": 0.14, "fillInBlank": 0.11, "definitional": 0.08, "causal": 0.05, "commonality": 0.05},
      structural_forms=_RAJASTHAN_GK_FORMS,
      cognitive_load=CognitiveLoadMix(low=0.50, medium=0.40, high=0.10),
    ),
    "hard": DifficultyMapping(
      archetypes={"singleFactRecall": 0.60, "comparative": 0.18, "exceptionNegative": 0.16, "fillInBlank": 0.08, "definitional": 0.08, "causal": 0.08, "commonality": 0.08},
      structural_forms=_RAJASTHAN_GK_FORMS,
      cognitive_load=CognitiveLoadMix(low=0.40, medium=0.45, high=0.15),
    ),
  },
  prohibitions=(
    'NEVER use "All of the above" or "None of the above"',
    "NEVER use 5 options; use exactly 4 options",
    "NEVER use match-the-following format",
    "NEVER use assertion-reason format",
    "NEVER use inaccurate Rajasthan facts",
    "NEVER use outdated information; use current district names, schemes and policies",
  ),
  cognitive_load_constraints=CognitiveLoadConstraints(max_consecutive_high=2, warmup_percentage=0.1),
  prompt_template=RAJASTHAN_GK_PROMPT,
  monolingual_language_block=HINDI_BLOCK,
  bilingual_language_block=BILINGUAL_BLOCK,
  validators=(check_prohibited_patterns, check_answer_balance),
)

BUILTIN_PROTOCOLS = (NEET_BIOLOGY, REET_MAINS_L2_RAJASTHAN_GK)
