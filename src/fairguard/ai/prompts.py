"""Prompt builders for every classifier decision path.

Each builder returns a ``ClassifierPrompt`` whose user prompt ends with the
exact JSON shape the matching verdict type validates against.
"""

from __future__ import annotations

from dataclasses import dataclass

SYSTEM_INSTRUCTION = (
    "You are the moderation judge of a chat community. "
    "Always answer with a single JSON object and nothing else. "
    "Write every explanation inside the JSON in the language of the community."
)


@dataclass(slots=True, frozen=True)
class ClassifierPrompt:
    system_instruction: str
    user_prompt: str
    purpose: str = "classification"


def _wrap(purpose: str, body: str) -> ClassifierPrompt:
    return ClassifierPrompt(SYSTEM_INSTRUCTION, body.strip(), purpose)


def build_graylist_prompt(matched_word: str, content: str, context: str) -> ClassifierPrompt:
    return _wrap("graylist", f"""
A message contains the watched term "{matched_word}". Decide whether the message,
read in its conversation context, attacks or harasses someone.

Rules:
- Quoting, asking about, or discussing the term itself (meta-discussion) is SAFE.
- Friendly banter that nobody in the context objects to is SAFE.
- Judge only this message in this context. Do not let the author's unrelated
  past behaviour change the verdict.
- A direct insult, threat or harassment aimed at a person is UNSAFE.

Respond with JSON: {{"verdict": "SAFE" or "UNSAFE", "reason": "short explanation"}}

[Message]: {content}
[Context]:
{context}
""")


def build_spam_prompt(
    content: str,
    context: str,
    *,
    message_length: int,
    max_length: int,
    recent_count: int,
    count_threshold: int,
    window_seconds: float,
) -> ClassifierPrompt:
    return _wrap("spam", f"""
A message tripped the spam or length check.
Length: {message_length} characters (limit {max_length}).
Messages from the same author in this channel during the last {window_seconds:g} seconds: {recent_count} (threshold {count_threshold}).

Rules:
- Legitimate long-form content (technical explanations, code, creative writing,
  detailed answers) is SAFE even when long.
- A natural multi-message reply or an active conversation is SAFE.
- Repeated, meaningless, copy-pasted or flooding content is PUNISH.

Respond with JSON: {{"verdict": "PUNISH" or "SAFE", "reason": "short explanation",
"type": "LONG_MESSAGE" or "SPAM" or "BOTH"}}

[Message]: {content}
[Context]:
{context}
""")


def build_abuse_prompt(
    moderator_id: str,
    target_id: str,
    reason: str,
    content: str,
    context: str,
    *,
    recent_warn_count: int,
    repeat_threshold: int,
    lookback_hours: float,
) -> ClassifierPrompt:
    frequency_hint = ""
    if recent_warn_count >= repeat_threshold:
        frequency_hint = (
            f"Note: this moderator already warned this user {recent_warn_count} times "
            f"in the last {lookback_hours:g} hour(s)."
        )
    return _wrap("abuse", f"""
Decide whether a moderator's manual warning is an abuse of power.

Criteria:
- A vague or purely emotional reason is abuse. A bare insult used as the reason
  ("gross", "annoying", "うざい") is abuse, and so is a subjective complaint
  followed by a causal connector ("because they're annoying", "うざいから").
- A warning driven by personal feelings or bias is abuse.
- Many warnings to the same user in a short time may be abuse.
- Ignoring the context of the message is abuse.
- A concrete, objective reason citing a rule (spam, harassment, a named rule
  violation) is acceptable.

Respond with JSON: {{"is_abuse": true or false, "reason": "detailed explanation",
"concerns": ["concern", ...]}}

{frequency_hint}

[Warning reason]: {reason}
[Target user]: {target_id}
[Moderator]: {moderator_id}
[Target message]: {content}
[Context]:
{context}
""")


def build_appeal_prompt(original_reason: str, appeal_text: str, content: str, context: str) -> ClassifierPrompt:
    return _wrap("appeal", f"""
A user appeals a moderation action. Decide whether to accept the appeal.

Accept when:
- The original message was meta-discussion of a forbidden term (quoting or
  asking about it) rather than using it against someone.
- The user's explanation is plausible and nothing in the context contradicts it.

Reject when:
- The context contradicts the user's claims, or the claims are fabricated.
- The original action was clearly justified by the message.

Respond with JSON: {{"status": "ACCEPTED" or "REJECTED", "reason": "short explanation"}}

[Original reason]: {original_reason}
[Appeal]: {appeal_text}
[Original message]: {content}
[Context]:
{context}
""")
