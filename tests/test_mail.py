import asyncio
from unittest.mock import Mock

from studygroup.services import mail
from studygroup.services.mail import Mailer


def test_unconfigured_mailer_keeps_token_out_of_info_logs(monkeypatch):
    logger = Mock()
    monkeypatch.setattr(mail, "logger", logger)

    asyncio.run(Mailer(host=None).send_password_reset("alice@example.com", "live-token-123"))

    for method in (logger.info, logger.warning, logger.error):
        for call in method.call_args_list:
            assert "live-token-123" not in repr(call)
    logger.warning.assert_called_once()
    assert "live-token-123" in repr(logger.debug.call_args)
