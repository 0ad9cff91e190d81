"""Records kept in the key-value store.

Stored JSON uses the camelCase field names of the mobile app so existing
device data stays readable.
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List

SEVERITIES = ('high', 'medium', 'low')
ALERT_CATEGORIES = ('phishing', 'malware', 'suspicious', 'darkweb')
ALERT_STATUSES = ('active', 'resolved')


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    # creation timestamp first so ids sort by age, random suffix keeps them unique
    return f"{time.strftime('%Y%m%dT%H%M%SZ', time.gmtime())}-{uuid.uuid4().hex[:8]}"


@dataclass
class UserRecord:
    id: str
    name: str
    email: str
    password_hash: str
    company_name: str
    gst_number: str
    language: str = 'English'
    is_verified: bool = False
    created_at: str = field(default_factory=now_iso)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'passwordHash': self.password_hash,
            'companyName': self.company_name,
            'gstNumber': self.gst_number,
            'language': self.language,
            'isVerified': self.is_verified,
            'createdAt': self.created_at,
        }

    def public_dict(self):
        """Record without the credential, for API responses and the session copy"""
        data = self.to_dict()
        data.pop('passwordHash')
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            email=data['email'],
            password_hash=data.get('passwordHash', ''),
            company_name=data.get('companyName', ''),
            gst_number=data.get('gstNumber', ''),
            language=data.get('language') or 'English',
            is_verified=bool(data.get('isVerified', False)),
            created_at=data.get('createdAt') or now_iso(),
        )


@dataclass
class OtpChallenge:
    code: str
    email: str
    issued_at: float
    expires_at: float
    attempts: int = 0

    def to_dict(self):
        return {
            'otp': self.code,
            'email': self.email,
            'timestamp': self.issued_at,
            'expires': self.expires_at,
            'attempts': self.attempts,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            code=str(data['otp']),
            email=data.get('email', ''),
            issued_at=float(data.get('timestamp', 0)),
            expires_at=float(data['expires']),
            attempts=int(data.get('attempts', 0)),
        )


@dataclass
class Alert:
    title: str
    description: str
    severity: str
    category: str
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=now_iso)
    status: str = 'active'

    def __post_init__(self):
        if self.severity not in SEVERITIES:
            raise ValueError(f'Unknown severity: {self.severity}')
        if self.category not in ALERT_CATEGORIES:
            raise ValueError(f'Unknown alert category: {self.category}')
        if self.status not in ALERT_STATUSES:
            raise ValueError(f'Unknown alert status: {self.status}')

    @property
    def is_active(self) -> bool:
        return self.status == 'active'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'severity': self.severity,
            'timestamp': self.timestamp,
            'category': self.category,
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            title=data.get('title', ''),
            description=data.get('description', ''),
            severity=data.get('severity', 'low'),
            timestamp=data.get('timestamp') or now_iso(),
            # older records keep the category under "type"
            category=data.get('category') or data.get('type') or 'suspicious',
            status=data.get('status', 'active'),
        )


@dataclass(frozen=True)
class ScanHistoryEntry:
    threats_found: int
    files_scanned: int
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self):
        return {
            'timestamp': self.timestamp,
            'threatsFound': self.threats_found,
            'filesScanned': self.files_scanned,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            timestamp=data.get('timestamp') or now_iso(),
            threats_found=int(data.get('threatsFound', 0)),
            files_scanned=int(data.get('filesScanned', 0)),
        )


@dataclass
class EmailAnalysis:
    sender: str
    subject: str
    content: str
    is_phishing: bool
    risk_score: int
    threats: List[str]
    recommendations: List[str]
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self):
        return {
            'id': self.id,
            'sender': self.sender,
            'subject': self.subject,
            'content': self.content,
            'timestamp': self.timestamp,
            'isPhishing': self.is_phishing,
            'riskScore': self.risk_score,
            'threats': list(self.threats),
            'recommendations': list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data.get('id') or new_id()),
            sender=data.get('sender', ''),
            subject=data.get('subject', ''),
            content=data.get('content', ''),
            timestamp=data.get('timestamp') or now_iso(),
            is_phishing=bool(data.get('isPhishing', False)),
            risk_score=int(data.get('riskScore', 0)),
            threats=list(data.get('threats') or []),
            recommendations=list(data.get('recommendations') or []),
        )


@dataclass
class ThreatAnalysis:
    url: str
    is_phishing: bool
    is_malware: bool
    risk_score: int
    threats: List[str]
    recommendations: List[str]

    def to_dict(self):
        return {
            'url': self.url,
            'isPhishing': self.is_phishing,
            'isMalware': self.is_malware,
            'riskScore': self.risk_score,
            'threats': list(self.threats),
            'recommendations': list(self.recommendations),
        }


@dataclass
class FileAnalysis:
    file_name: str
    file_path: str
    file_size: int
    size_known: bool
    file_type: str
    is_malware: bool
    risk_score: int
    threats: List[str]
    recommendations: List[str]
    scan_date: str = field(default_factory=now_iso)

    def to_dict(self):
        return {
            'fileName': self.file_name,
            'filePath': self.file_path,
            'fileSize': self.file_size,
            'sizeKnown': self.size_known,
            'fileType': self.file_type,
            'isMalware': self.is_malware,
            'riskScore': self.risk_score,
            'threats': list(self.threats),
            'recommendations': list(self.recommendations),
            'scanDate': self.scan_date,
        }


@dataclass
class Breach:
    id: str
    type: str
    value: str
    source: str
    date_found: str
    severity: str
    status: str

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'value': self.value,
            'source': self.source,
            'dateFound': self.date_found,
            'severity': self.severity,
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            type=data.get('type', 'email'),
            value=data.get('value', ''),
            source=data.get('source', ''),
            date_found=data.get('dateFound') or now_iso(),
            severity=data.get('severity', 'medium'),
            status=data.get('status', 'active'),
        )
