"""
Suggest an interception prefix from a pasted download log.
A plain pattern scan: the first blob/model/file download URL wins.
"""

import re
from typing import Optional

from interceptor.models import is_absolute_url

DOWNLOAD_URL = re.compile(r"(https?://[^\s'\"]+/(?:blobs|models|files)/[^\s'\"]+)")

NO_SUGGESTION = "No suggestion found. Please check log format for download URLs."
UNPARSABLE = "Could not parse a valid URL from logs."


def suggest_rule_prefix(log_content: str) -> Optional[str]:
    """Return the first download URL cut after its last "/", or None"""
    suggestion = analyze_log(log_content)
    if suggestion in (NO_SUGGESTION, UNPARSABLE):
        return None
    return suggestion


def analyze_log(log_content: str) -> str:
    """Suggested prefix, or the message explaining why there is none"""
    match = DOWNLOAD_URL.search(log_content or "")
    if not match:
        return NO_SUGGESTION

    url = match.group(1)
    if not is_absolute_url(url):
        return UNPARSABLE
    return url[: url.rfind("/") + 1]
