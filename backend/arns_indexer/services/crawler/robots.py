"""robots.txt parsing and path policy evaluation."""

import re
from typing import Optional

from .models import RobotsTxtRules, RobotsTxtValidation

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def _parse_crawl_delay(value: str) -> Optional[int]:
    match = _LEADING_INT_RE.match(value)
    if not match:
        return None
    delay = int(match.group(1))
    return delay if delay > 0 else None


def parse_robots_txt(content: str) -> RobotsTxtValidation:
    """Parse robots.txt, keeping Allow/Disallow rules for the wildcard user-agent only."""
    try:
        rules = RobotsTxtRules()
        current_user_agent = ""

        for line in content.split("\n"):
            trimmed = line.strip()
            if not trimmed or trimmed.startswith("#"):
                continue

            directive, sep, value = trimmed.partition(":")
            if not sep:
                continue
            directive = directive.strip().lower()
            value = value.strip()

            applies = current_user_agent in ("*", "")
            if directive == "user-agent":
                current_user_agent = value.lower()
            elif directive == "allow":
                if applies:
                    rules.allowed_paths.append(value)
            elif directive == "disallow":
                if applies:
                    rules.disallowed_paths.append(value)
            elif directive == "sitemap":
                rules.sitemap_urls.append(value)
            elif directive == "crawl-delay":
                delay = _parse_crawl_delay(value)
                if delay is not None:
                    rules.crawl_delay = delay

        return RobotsTxtValidation(is_valid=True, rules=rules)
    except Exception as exc:
        return RobotsTxtValidation(is_valid=False, rules=None, error=str(exc))


def matches_robots_pattern(path: str, pattern: str) -> bool:
    if not pattern:
        return False

    if "*" in pattern:
        body = pattern[:-1] if pattern.endswith("$") else pattern
        regex = ".*".join(re.escape(part) for part in body.split("*"))
        return re.fullmatch(regex, path) is not None

    if pattern.endswith("$"):
        return path == pattern[:-1]

    return path.startswith(pattern)


def is_path_allowed(path: str, rules: RobotsTxtRules) -> bool:
    """A disallowed path is only allowed again by a strictly longer matching Allow rule."""
    for disallowed in rules.disallowed_paths:
        if not matches_robots_pattern(path, disallowed):
            continue
        for allowed in rules.allowed_paths:
            if len(allowed) > len(disallowed) and matches_robots_pattern(path, allowed):
                return True
        return False
    return True
