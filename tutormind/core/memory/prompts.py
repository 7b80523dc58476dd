# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Prompt templates for memory extraction and retrieval.

Templates use str.format placeholders. Literal braces in the JSON
examples are doubled.
"""

from tutormind.models.memory import (
    FactCategory,
    RelationalNoteType,
    StrategyName,
    StrategyOutcome,
)

FACT_CATEGORIES = ", ".join(c.value for c in FactCategory)

# memory_link is written by the link tool only
NOTE_TYPES = ", ".join(t.value for t in RelationalNoteType if t is not RelationalNoteType.MEMORY_LINK)

STRATEGY_NAMES = ", ".join(s.value for s in StrategyName)

OUTCOMES = ", ".join(o.value for o in StrategyOutcome)

EXTRACTION_SYSTEM_PROMPT = (
    "You extract long-term memories from tutoring conversations. "
    "Respond with a single JSON object and nothing else."
)

EXTRACTION_PROMPT = """Read this tutoring conversation between a learner (USER) and their tutor (ASSISTANT).
Each line shows the speaker, the detected emotion in brackets when known, and what was said.

{transcript}

Extract two kinds of memories.

1. facts: things about the learner's life worth remembering in future sessions.
   category must be one of: {fact_categories}

2. notes: the tutor's own observations about the relationship with the learner,
   such as what worked, shared jokes or emotional milestones.
   type must be one of: {note_types}

Only keep what would still matter in a week. Skip greetings, small talk and
anything already obvious from the curriculum. Return empty lists when nothing
qualifies.

Numeric ranges:
- confidence, emotional_arousal, llm_importance, perplexity, effectiveness_score: 0.0 to 1.0
- emotional_valence: -1.0 to 1.0

Respond with JSON in exactly this shape:
{{
  "facts": [
    {{
      "content": "full sentence about the learner",
      "summary": "short version, at most 200 characters",
      "category": "one of the fact categories",
      "confidence": 0.8,
      "emotional_arousal": 0.5,
      "emotional_valence": 0.0,
      "dominant_emotion": "neutral",
      "llm_importance": 0.5,
      "granularity": "utterance",
      "perplexity": 0.0
    }}
  ],
  "notes": [
    {{
      "content": "the tutor's observation",
      "summary": "short version, at most 200 characters",
      "type": "one of the note types",
      "effectiveness_score": 0.5,
      "emotional_arousal": 0.5,
      "emotional_valence": 0.0,
      "dominant_emotion": "neutral",
      "llm_importance": 0.5,
      "granularity": "turn",
      "perplexity": 0.0
    }}
  ]
}}"""

STRATEGY_SYSTEM_PROMPT = (
    "You analyse tutoring exchanges to learn which teaching approaches work "
    "for a learner. Respond with a single JSON object and nothing else."
)

STRATEGY_PROMPT = """Here are the last messages of a tutoring session:

{transcript}

EMOTIONAL DATA:
- Arousal at start: {start_arousal}
- Arousal at end: {end_arousal}
- Peak moment: {peak_moment}
- Dominant emotions: {dominant_emotions}

Decide whether the tutor was teaching something. If the exchange was not
instructional, respond with {{"no_strategy": true}}.

Otherwise identify the single main teaching approach the tutor used.
strategy must be one of: {strategies}
outcome must be one of: {outcomes}

Outcome meanings:
- breakthrough: the learner clearly understood, often with visible excitement
- partial_success: some progress but the concept is not fully settled
- no_progress: the learner stayed where they started
- confusion: the learner ended more confused than before

Respond with JSON in exactly this shape:
{{
  "topic": "what was being taught, a few words",
  "strategy": "one of the strategies",
  "outcome": "one of the outcomes",
  "evidence": "one sentence quoting or describing what shows the outcome"
}}"""

RETRIEVAL_SYSTEM_PROMPT = (
    "You help a tutor find its memories about a learner. "
    "Respond with a single JSON object and nothing else."
)

QUERY_EXPANSION_PROMPT = """The learner's current message or topic: "{topic}"

Recent conversation:
{context}

Write 3 to {max_queries} short search queries that would find useful memories about this learner.
Cover the literal topic, related concepts they may have struggled with, learning preferences,
emotional context (anxiety, confidence, past breakthroughs) and personal context (goals, interests).

Respond with:
{{"queries": ["query one", "query two", "query three"]}}"""

RERANK_PROMPT = """Current question or topic: "{topic}"

Recent conversation:
{context}

Memories about the learner:
{memories}

Order the memories by how directly useful they are for the current question.
Weigh direct topical relevance highest, then learning preferences that apply,
emotional context, and past breakthroughs on similar topics.

Respond with the bracketed indices, most useful first:
{{"ranking": [2, 0, 1]}}"""
