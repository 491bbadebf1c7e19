"""Sample page text and fake clients shared by the tests."""

import json
import re
from types import SimpleNamespace

from ticket_alert.models import NotificationOutcome

TARGET = "May 03, 2025 07:30 PM Royal Challengers Bengaluru VS Chennai Super Kings"
RECIPIENTS = ("fan.one@example.com", "fan.two@example.com")

AVAILABLE_TEXT = (
    "Home Fixtures April 27, 2025 03:30 PM Royal Challengers Bengaluru VS Delhi Capitals SOLD OUT "
    f"{TARGET} Rs 500-5000 BUY TICKETS "
    "May 13, 2025 07:30 PM Royal Challengers Bengaluru VS Sunrisers Hyderabad COMING SOON"
)
SOLD_OUT_TEXT = (
    "Home Fixtures April 27, 2025 03:30 PM Royal Challengers Bengaluru VS Delhi Capitals "
    f"Rs 500-5000 BUY TICKETS {TARGET} SOLD OUT "
    "May 13, 2025 07:30 PM Royal Challengers Bengaluru VS Sunrisers Hyderabad COMING SOON"
)


def _response(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def tool_call(arguments, *, name="send_notification", call_id="call_1"):
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=raw),
    )


def text_response(content):
    return _response(content=content)


def tool_response(*calls):
    return _response(tool_calls=list(calls))


class RuleBasedChatClient:
    """Stands in for the chat completions API by reading the prompt it is sent."""

    def __init__(self):
        self.calls = []
        self.chat = SimpleNamespace(completions=self)

    def create(self, **kwargs):
        self.calls.append(kwargs)
        messages = kwargs["messages"]
        prompt = messages[1]["content"]
        target = re.search(r"Your target match is: (.+)", prompt).group(1).strip()

        if messages[-1]["role"] == "tool":
            return text_response(f"EMAIL_SENT: Tickets found for {target} and notification sent.")

        scraped = prompt.split('"""')[1]
        position = scraped.find(target)
        segment = scraped[position + len(target):position + len(target) + 40] if position >= 0 else ""
        if re.search(r"Rs\s*\d", segment) and "BUY TICKETS" in segment and "SOLD OUT" not in segment:
            return tool_response(
                tool_call({"message": f"Tickets for {target} are on sale.", "matchName": target})
            )
        return text_response(f"NOT_AVAILABLE: No tickets currently available for {target}.")


class ScriptedChatClient:
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.chat = SimpleNamespace(completions=self)

    def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingNotifier:
    def __init__(self, outcome=None):
        self.requests = []
        self.outcome = outcome or NotificationOutcome(delivered=RECIPIENTS)

    def __call__(self, request):
        self.requests.append(request)
        return self.outcome

