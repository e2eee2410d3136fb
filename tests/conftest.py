import pytest

from helpers import WebhookStub


@pytest.fixture
def webhook_stub() -> WebhookStub:
    return WebhookStub()
