"""
Shared test doubles for the text-generation provider, the voice provider and email.
"""
import pytest

from app.llm.provider import LLMProvider, LLMProviderError, LLMResponse
from app.services.telephony_client import TelephonyError


class FakeLLMProvider(LLMProvider):
    """Returns queued responses in order; queued exceptions are raised."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def chat(self, messages, model, temperature=0.7, max_tokens=None, json_mode=False, **kwargs):
        self.calls.append({"messages": messages, "model": model, "json_mode": json_mode})
        if not self.responses:
            raise LLMProviderError("no response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return LLMResponse(content=response, tokens_in=10, tokens_out=20, model=model)


class FakeNotifier:
    """Records every email instead of sending it."""

    def __init__(self, result=True, fail_for=None):
        self.result = result
        self.fail_for = set(fail_for or [])
        self.daily = []
        self.unlocks = []
        self.milestones = []

    def send_daily_plan_email(self, user, planner, day_index, day, pdf_bytes=None):
        if user.id in self.fail_for:
            raise RuntimeError(f"smtp down for user {user.id}")
        self.daily.append({"user_id": user.id, "planner_id": planner.id, "day_index": day_index,
                           "day": day, "pdf_bytes": pdf_bytes})
        return self.result

    def send_interview_unlock_email(self, user, planner, interview, progress):
        self.unlocks.append({"user_id": user.id, "interview_id": interview.id, "progress": progress})
        return self.result

    def send_milestone_email(self, user, planner, milestone):
        self.milestones.append(milestone.progress)
        return self.result


class FakeTelephony:
    """Voice provider double. Set `error` to make every call fail."""

    def __init__(self, assistant_id="asst_123", call_id="call_abc", error=None, call_status=None):
        self.assistant_id = assistant_id
        self.call_id = call_id
        self.error = error
        self.call_status = call_status or {"id": call_id, "status": "in-progress"}
        self.configs = []
        self.calls = []

    def create_interview_assistant(self, config):
        if self.error:
            raise self.error
        self.configs.append(config)
        return self.assistant_id

    def start_call(self, assistant_id, phone_number):
        if self.error:
            raise self.error
        self.calls.append((assistant_id, phone_number))
        return self.call_id

    def get_call_status(self, call_id):
        if self.error:
            raise self.error
        return self.call_status


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def fake_telephony():
    return FakeTelephony()


@pytest.fixture
def failing_telephony():
    return FakeTelephony(error=TelephonyError("Voice provider returned 503", status_code=503))
