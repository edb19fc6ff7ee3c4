from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List

WARNING = "warn"
ERROR = "error"


@dataclass(frozen=True)
class Issue:
    severity: str
    code: str
    message: str
    path: str = "/"

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def warning(code: str, message: str, path: str = "/") -> Issue:
    return Issue(severity=WARNING, code=code, message=message, path=path)


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == ERROR for issue in issues)


def to_lines(issues: Iterable[Issue]) -> List[str]:
    return [f"[{issue.severity.upper()}] {issue.code} {issue.path}: {issue.message}" for issue in issues]
