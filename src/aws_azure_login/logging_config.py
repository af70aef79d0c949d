import logging
import os
import re
from pathlib import Path
from typing import Optional


# Form-encoded SAML values are bearer tokens until they expire; keep them out of log files.
_SAML_VALUE_RE = re.compile(r"(SAML(?:Response|Request)=)[^&\s\"']+")


class RedactSamlFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SAML_VALUE_RE.sub(r"\1<redacted>", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    # stderr: stdout carries the credentials when run as a credential_process.
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    redact = RedactSamlFilter()
    for handler in handlers:
        handler.addFilter(redact)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # the CLI reconfigures once the YAML settings are loaded
    )

    # Playwright and botocore are chatty at DEBUG (every routed request, every signed call).
    for noisy in ("playwright", "asyncio", "botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
