from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import httpx
import openai
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from ticket_alert.config import Settings
from ticket_alert.models import (
    STATUS_EMAIL_SENT,
    STATUS_NOT_AVAILABLE,
    Availability,
    ClassificationVerdict,
    Decision,
    MatchQuery,
    NotificationOutcome,
    NotificationRequest,
)

logger = logging.getLogger(__name__)

Notify = Callable[[NotificationRequest], NotificationOutcome]

SEND_NOTIFICATION_TOOL = "send_notification"
DEFAULT_SEED = 42

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

SYSTEM_PROMPT = (
    "You are a ticket availability checker. You decide from scraped page text "
    "whether tickets for one specific event can be bought right now."
)


def build_notification_tool(query: MatchQuery) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": SEND_NOTIFICATION_TOOL,
            "description": "Sends email notifications about ticket availability for a specific match",
            "strict": True,
            "parameters": {
                "type": "object",
                "properties": {
                    "message": {
                        "type": "string",
                        "description": "The content of the email body.",
                    },
                    "matchName": {
                        "type": "string",
                        "description": (
                            f"The specific match the notification is for (e.g., {query.identifier})"
                        ),
                    },
                },
                "required": ["message", "matchName"],
                "additionalProperties": False,
            },
        },
    }


def build_notification_body(query: MatchQuery, ticket_url: str) -> str:
    return (
        f"Good news! Tickets for {query.identifier} appear to be available NOW. "
        f"Price range likely indicates availability. Book quickly at {ticket_url}"
    )


def build_prompt(text: str, query: MatchQuery, *, ticket_url: str) -> str:
    target = query.identifier
    return f"""Your target match is: {target}

I will give you scraped content from the ticket website {ticket_url}. You need to accurately \
determine ONLY if tickets for the target match are available for purchase.

Scraped content:
\"\"\"
{text}
\"\"\"

IMPORTANT INSTRUCTIONS:
1. Carefully locate the exact entry for "{target}".
2. Examine only the text immediately following this entry.
3. Tickets are AVAILABLE ONLY IF you find both a price range (like "Rs 500-5000") AND the \
text "BUY TICKETS" associated specifically with "{target}".
4. If "{target}" is followed by "SOLD OUT", "PHASE 1 SOLD OUT", "COMING SOON", or lacks \
both a price and "BUY TICKETS", then tickets are NOT available.
5. Do NOT confuse the status of "{target}" with any other match listed. Verify the status \
belongs strictly to "{target}", including its exact date and time.

RESPONSE ACTIONS:

A) IF AND ONLY IF tickets for "{target}" are confirmed available (price + "BUY TICKETS"):
   - Call the "{SEND_NOTIFICATION_TOOL}" tool exactly once.
   - The tool 'matchName' input MUST be exactly "{target}".
   - The tool 'message' input should be: "{build_notification_body(query, ticket_url)}"
   - After the tool result comes back, your final text response MUST be: \
"{STATUS_EMAIL_SENT}: Tickets found for {target} and notification sent."

B) If tickets for "{target}" are NOT available OR the status is unclear or cannot be \
reliably determined from the text:
   - Do NOT call the "{SEND_NOTIFICATION_TOOL}" tool.
   - Your final text response MUST be: "{STATUS_NOT_AVAILABLE}: No tickets currently \
available for {target}."

Provide ONLY the final text response ("{STATUS_EMAIL_SENT}: ..." or \
"{STATUS_NOT_AVAILABLE}: ...") based on your analysis and actions."""


def _strip_prefix(content: str, prefix: str) -> str:
    remainder = content.strip()[len(prefix):]
    return remainder.lstrip(" :").strip()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_fixed(2),
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    reraise=True,
)
def _create_completion(client: Any, **kwargs: Any) -> Any:
    return client.chat.completions.create(**kwargs)


class AvailabilityClassifier:
    """Decides availability with one model call and notifies only on a positive decision.

    ``decide`` has no side effects. ``dispatch`` is the only place the
    notifier is called, and only for ``Availability.AVAILABLE``.
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        recipients: tuple[str, ...],
        notify: Notify,
        ticket_url: str,
        seed: int = DEFAULT_SEED,
        max_tokens: int = 512,
    ) -> None:
        self._client = client
        self._model = model
        self._recipients = recipients
        self._notify = notify
        self._ticket_url = ticket_url
        self._seed = seed
        self._max_tokens = max_tokens

    def _completion(self, messages: list[dict], query: MatchQuery, *, tool_choice: str) -> Any:
        return _create_completion(
            self._client,
            model=self._model,
            messages=messages,
            tools=[build_notification_tool(query)],
            tool_choice=tool_choice,
            temperature=0,
            top_p=1,
            seed=self._seed,
            max_tokens=self._max_tokens,
        )

    def decide(self, text: str, query: MatchQuery) -> Decision:
        messages: list[dict] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(text, query, ticket_url=self._ticket_url)},
        ]
        try:
            response = self._completion(messages, query, tool_choice="auto")
            return self._interpret(response, query, messages)
        except Exception as exc:
            logger.error("error analyzing tickets: %s", exc)
            return Decision(Availability.ERROR, f"Error analyzing tickets: {exc}")

    def _interpret(self, response: Any, query: MatchQuery, messages: list[dict]) -> Decision:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return Decision(Availability.ERROR, "Model returned no choices.")
        message = choices[0].message
        tool_calls = list(getattr(message, "tool_calls", None) or [])
        content = (getattr(message, "content", None) or "").strip()

        if tool_calls:
            return self._interpret_tool_call(tool_calls, content, query, messages)

        if not content:
            return Decision(Availability.ERROR, "Model returned no terminal response.")
        if content.upper().startswith(STATUS_NOT_AVAILABLE):
            justification = _strip_prefix(content, STATUS_NOT_AVAILABLE)
            return Decision(
                Availability.NOT_AVAILABLE,
                justification or f"No tickets currently available for {query.identifier}.",
            )
        if content.upper().startswith(STATUS_EMAIL_SENT):
            return Decision(
                Availability.ERROR,
                f"Model reported {STATUS_EMAIL_SENT} without calling {SEND_NOTIFICATION_TOOL}.",
            )
        return Decision(Availability.ERROR, f"Unrecognized model response: {content[:200]}")

    def _interpret_tool_call(
        self,
        tool_calls: list[Any],
        content: str,
        query: MatchQuery,
        messages: list[dict],
    ) -> Decision:
        if len(tool_calls) > 1:
            return Decision(
                Availability.ERROR,
                f"Model requested {len(tool_calls)} tool calls; at most one is allowed.",
            )
        call = tool_calls[0]
        if call.function.name != SEND_NOTIFICATION_TOOL:
            return Decision(Availability.ERROR, f"Model called unknown tool {call.function.name!r}.")
        try:
            arguments = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as exc:
            return Decision(Availability.ERROR, f"Tool arguments are not valid JSON: {exc}")
        if not isinstance(arguments, dict):
            return Decision(Availability.ERROR, "Tool arguments must be a JSON object.")

        match_name = str(arguments.get("matchName", "")).strip()
        if match_name != query.identifier:
            return Decision(
                Availability.ERROR,
                f"Tool call targeted {match_name!r} instead of {query.identifier!r}.",
            )
        body = str(arguments.get("message", "")).strip() or build_notification_body(
            query, self._ticket_url
        )

        assistant_turn = {
            "role": "assistant",
            "content": content or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
            ],
        }
        return Decision(
            Availability.AVAILABLE,
            f"Tickets found for {query.identifier}.",
            notification_body=body,
            transcript=(*messages, assistant_turn),
        )

    def dispatch(self, decision: Decision, query: MatchQuery) -> ClassificationVerdict:
        if decision.availability is not Availability.AVAILABLE or decision.notification_body is None:
            return ClassificationVerdict(decision.availability, decision.justification)

        request = NotificationRequest(
            recipients=self._recipients,
            subject=query.subject,
            body=decision.notification_body,
        )
        logger.info("preparing to notify %s about %s", ", ".join(request.recipients), query.identifier)
        outcome = self._notify(request)
        return ClassificationVerdict(
            Availability.AVAILABLE,
            self._finalize(decision, outcome, query),
            notification=outcome,
        )

    def _finalize(self, decision: Decision, outcome: NotificationOutcome, query: MatchQuery) -> str:
        if outcome.succeeded_count and not outcome.failed_count:
            default = f"Tickets found for {query.identifier} and notification sent."
        else:
            default = f"Tickets found for {query.identifier}; notification {outcome.summary.rstrip('.')}."

        if not decision.transcript or outcome.failed_count or not outcome.succeeded_count:
            return default
        tool_call_id = decision.transcript[-1]["tool_calls"][0]["id"]
        messages = [
            *decision.transcript,
            {"role": "tool", "tool_call_id": tool_call_id, "content": outcome.summary},
        ]
        try:
            response = self._completion(messages, query, tool_choice="none")
            final_text = (response.choices[0].message.content or "").strip()
        except Exception as exc:
            logger.warning("final answer after notification failed, using default: %s", exc)
            return default

        logger.info("model final answer: %s", final_text)
        if final_text.upper().startswith(STATUS_EMAIL_SENT):
            return _strip_prefix(final_text, STATUS_EMAIL_SENT) or default
        return default

    def classify(self, text: str, query: MatchQuery) -> ClassificationVerdict:
        logger.info("processing scraped ticket data for %s", query.identifier)
        decision = self.decide(text, query)
        verdict = self.dispatch(decision, query)
        if verdict.availability is Availability.ERROR:
            logger.error("ticket analysis failed: %s", verdict.status)
        else:
            logger.info("ticket analysis completed: %s", verdict.status)
        return verdict


def build_openai_client(settings: Settings) -> openai.OpenAI:
    client_kwargs: dict[str, Any] = {
        "api_key": settings.openai_api_key,
        "timeout": httpx.Timeout(settings.llm_timeout_seconds, connect=10.0),
        "max_retries": 0,
    }
    if settings.openai_base_url:
        client_kwargs["base_url"] = settings.openai_base_url
    return openai.OpenAI(**client_kwargs)


def build_classifier(
    settings: Settings,
    *,
    notify: Notify,
    client: Any | None = None,
) -> AvailabilityClassifier:
    return AvailabilityClassifier(
        client if client is not None else build_openai_client(settings),
        model=settings.openai_model,
        recipients=settings.recipients,
        notify=notify,
        ticket_url=settings.ticket_url,
    )
