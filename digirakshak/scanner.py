"""Rule-based screening of e-mails, websites and files.

All functions are pure: they only read the rule tables below and never touch
stored state. Threat strings are appended in rule order, which callers and
tests rely on.
"""
import logging
import os
import re
from typing import Callable, Optional

from .errors import AnalysisError
from .records import EmailAnalysis, ThreatAnalysis, FileAnalysis

logger = logging.getLogger(__name__)

# Constants
PHISHING_KEYWORDS = [
    "urgent", "verify account", "suspended", "click here", "limited time",
    "congratulations", "winner", "claim now", "act now", "verify identity",
    "update payment", "confirm details", "security alert", "account locked"
]
SUSPICIOUS_SENDER_DOMAINS = [
    "tempmail", "guerrillamail", "10minutemail", "mailinator",
    "secure-bank", "paypal-security", "amazon-security"
]
URGENCY_MARKERS = ["urgent", "immediate"]
URL_RE = re.compile(r"https?://[^\s]+")
MAX_LINKS = 3

MALICIOUS_DOMAINS = [
    "phishing-site", "fake-bank", "malware-host", "suspicious-download",
    "free-money", "win-prize", "urgent-update"
]
SUSPICIOUS_URL_PATTERNS = [
    "download-now", "free-software", "cracked", "keygen", "serial"
]
MAX_URL_LENGTH = 100

DANGEROUS_EXTENSIONS = {"exe", "bat", "cmd", "com", "pif", "scr", "vbs", "js", "jar"}
ARCHIVE_EXTENSIONS = {"zip", "rar", "7z", "tar", "gz"}
SUSPICIOUS_FILENAME_WORDS = ["crack", "keygen", "patch", "hack", "free", "download"]
LARGE_FILE_BYTES = 100 * 1024 * 1024

EMAIL_PHISHING_THRESHOLD = 30
WEBSITE_MALWARE_THRESHOLD = 35
WEBSITE_PHISHING_THRESHOLD = 25
FILE_MALWARE_THRESHOLD = 40


def bar(v: int):
    """Clamp value between 0-100"""
    return max(0, min(100, int(v)))


def score_to_label(score: int) -> str:
    """Convert risk score to label"""
    if score >= 70: return "Dangerous"
    if score >= 35: return "Warning"
    return "Safe"


def analyze_email(content: str, sender: str, subject: str) -> EmailAnalysis:
    """Score an e-mail for phishing"""
    risk = 0
    threats = []
    content = content or ""
    sender = sender or ""
    subject = subject or ""
    text = content.lower()
    sender_l = sender.lower()
    subject_l = subject.lower()

    for kw in PHISHING_KEYWORDS:
        if kw in text or kw in subject_l:
            risk += 15
            threats.append(f"Suspicious keyword detected: {kw}")

    for domain in SUSPICIOUS_SENDER_DOMAINS:
        if domain in sender_l:
            risk += 25
            threats.append(f"Suspicious sender domain: {domain}")

    if len(URL_RE.findall(text)) > MAX_LINKS:
        risk += 20
        threats.append("Multiple suspicious links detected")

    if any(m in text for m in URGENCY_MARKERS):
        risk += 10
        threats.append("Urgent language detected - common phishing tactic")

    is_phishing = risk > EMAIL_PHISHING_THRESHOLD
    if is_phishing:
        recommendations = [
            "Do not click any links or provide personal information",
            "Report this email to your IT or security contact",
        ]
    else:
        recommendations = [
            "Email appears legitimate, but always verify sender identity before sharing sensitive information",
        ]

    return EmailAnalysis(
        sender=sender,
        subject=subject,
        content=content,
        is_phishing=is_phishing,
        risk_score=bar(risk),
        threats=threats,
        recommendations=recommendations,
    )


def analyze_website(url: str) -> ThreatAnalysis:
    """Analyze URL for threats"""
    risk = 0
    threats = []
    recommendations = []
    url = url or ""
    url_l = url.lower()

    for domain in MALICIOUS_DOMAINS:
        if domain in url_l:
            risk += 40
            threats.append(f"Malicious domain detected: {domain}")

    for pattern in SUSPICIOUS_URL_PATTERNS:
        if pattern in url_l:
            risk += 20
            threats.append(f"Suspicious pattern detected: {pattern}")

    if not url.startswith("https://"):
        risk += 15
        threats.append("Website does not use secure HTTPS connection")
        recommendations.append("Only visit websites with HTTPS encryption")

    if len(url) > MAX_URL_LENGTH:
        risk += 10
        threats.append("Unusually long URL detected")

    if not threats:
        recommendations.append("Website appears safe, but always verify before entering sensitive information")
    else:
        recommendations.append("Avoid entering personal or financial information on this website")
        recommendations.append("Consider using antivirus software for additional protection")

    return ThreatAnalysis(
        url=url,
        is_phishing=risk > WEBSITE_PHISHING_THRESHOLD,
        is_malware=risk > WEBSITE_MALWARE_THRESHOLD,
        risk_score=bar(risk),
        threats=threats,
        recommendations=recommendations,
    )


def file_extension(name: str) -> str:
    """Lower-cased text after the last dot, empty when there is none"""
    if not name or "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def probe_size(path: str, size_probe: Callable[[str], int] = os.path.getsize) -> Optional[int]:
    """Best-effort byte size; None when the file system cannot tell."""
    try:
        size = size_probe(path)
    except OSError:
        logger.debug("File info not available for %s, using filename analysis only", path)
        return None
    except Exception as e:
        raise AnalysisError("Failed to analyze file") from e
    return int(size) if size else 0


def analyze_file(path: str, name: str, size_probe: Callable[[str], int] = os.path.getsize) -> FileAnalysis:
    """Score a picked file from its name, extension and size"""
    name = name or ""
    size = probe_size(path, size_probe)
    ext = file_extension(name)
    name_l = name.lower()

    risk = 0
    threats = []

    if ext in DANGEROUS_EXTENSIONS:
        risk += 50
        threats.append(f"Potentially dangerous file type: .{ext}")

    if ext in ARCHIVE_EXTENSIONS:
        risk += 20
        threats.append("Compressed file detected - scan contents carefully")

    if size is not None and size > LARGE_FILE_BYTES:
        risk += 15
        threats.append("Large file size detected")

    for word in SUSPICIOUS_FILENAME_WORDS:
        if word in name_l:
            risk += 25
            threats.append(f"Suspicious filename pattern: {word}")

    is_malware = risk > FILE_MALWARE_THRESHOLD
    if is_malware:
        recommendations = ["Delete this file immediately and run a full system scan"]
    else:
        recommendations = ["File appears safe, but always scan files from unknown sources"]

    return FileAnalysis(
        file_name=name,
        file_path=path,
        file_size=size or 0,
        size_known=size is not None,
        file_type=ext,
        is_malware=is_malware,
        risk_score=bar(risk),
        threats=threats,
        recommendations=recommendations,
    )
