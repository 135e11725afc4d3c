"""
RuleMatcher - finds the rule that intercepts a request URL.

Matching is a literal, case-sensitive string prefix test against the rule's
sourceUrlPrefix, so "https://host/models" also matches "https://host/models2/x".
Include the trailing slash in the prefix to avoid that.
"""

from typing import Iterable, Optional

import structlog

from interceptor.models import Rule, is_absolute_url

logger = structlog.get_logger(__name__)


def strip_query(url: str) -> str:
    return url.split("?", 1)[0]


class RuleMatcher:

    def match(self, request_url: str, rules: Iterable[Rule]) -> Optional[Rule]:
        """Return the first rule whose prefix matches, or None"""
        for rule in rules:
            if not is_absolute_url(rule.source_url_prefix):
                logger.debug("rule_skipped", rule_id=rule.id, prefix=rule.source_url_prefix)
                continue

            compare_url = strip_query(request_url) if rule.ignore_query_params else request_url
            if compare_url.startswith(rule.source_url_prefix):
                return rule

        return None
