"""Heuristics for recognising captcha and bot-challenge pages."""

import re

from bs4 import BeautifulSoup

# Elements that only show up on challenge or captcha pages
BLOCK_SELECTORS = [
    "iframe[src*='recaptcha']",
    "iframe[src*='hcaptcha.com']",
    "iframe[src*='challenges.cloudflare.com']",
    ".g-recaptcha",
    ".h-captcha",
    ".cf-turnstile",
    "#challenge-form",
    "#challenge-running",
    "#cf-challenge-running",
    ".cf-browser-verification",
    "#px-captcha",
    "#distilCaptchaForm",
    "form#captcha-form",
]

BLOCK_TITLE_PATTERNS = [
    re.compile(r"attention required", re.IGNORECASE),
    re.compile(r"just a moment", re.IGNORECASE),
    re.compile(r"access denied", re.IGNORECASE),
    re.compile(r"are you a robot", re.IGNORECASE),
    re.compile(r"verify you are human", re.IGNORECASE),
    re.compile(r"pardon our interruption", re.IGNORECASE),
]


def detect_block(html: str) -> bool:
    """Return True if the rendered HTML looks like a captcha or block page."""
    soup = BeautifulSoup(html, "html.parser")

    for selector in BLOCK_SELECTORS:
        if soup.select_one(selector):
            return True

    title = soup.title.get_text(strip=True) if soup.title else ""
    return any(pattern.search(title) for pattern in BLOCK_TITLE_PATTERNS)
