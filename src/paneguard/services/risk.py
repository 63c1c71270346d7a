"""Regex-based risk classification of shell commands.

Classification is a heuristic, not a shell parser. Chaining, substitution
and redirection operators are treated as dangerous wherever they appear,
because the classifier cannot tell where one sub-command ends and the next
begins. Innocent redirects are therefore flagged too.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from paneguard.storage.models import RiskAssessment, RiskLevel

logger = logging.getLogger(__name__)

SAFE_PATTERNS: tuple[tuple[str, str], ...] = (
    # Files and directories
    (r"^ls(\s|$)", "list directory"),
    (r"^pwd(\s|$)", "print working directory"),
    (r"^cd(\s|$)", "change directory"),
    (r"^cat\s+[^/|><&;]", "print relative file"),
    (r"^head(\s|$)", "file head"),
    (r"^tail(\s|$)", "file tail"),
    (r"^less(\s|$)", "pager"),
    (r"^more(\s|$)", "pager"),
    (r"^file(\s|$)", "file type"),
    (r"^stat(\s|$)", "file status"),
    (r"^tree(\s|$)", "directory tree"),
    # Search
    (r"^grep(\s|$)", "search"),
    (r"^find(\s|$)", "search"),
    (r"^rg(\s|$)", "search"),
    (r"^ag(\s|$)", "search"),
    (r"^ack(\s|$)", "search"),
    (r"^locate(\s|$)", "search"),
    # System info
    (r"^which(\s|$)", "system info"),
    (r"^whoami(\s|$)", "system info"),
    (r"^date(\s|$)", "system info"),
    (r"^uptime(\s|$)", "system info"),
    (r"^uname(\s|$)", "system info"),
    (r"^hostname(\s|$)", "system info"),
    # Processes
    (r"^ps(\s|$)", "process list"),
    (r"^top(\s|$)", "process monitor"),
    (r"^htop(\s|$)", "process monitor"),
    # Git read operations
    (r"^git\s+(status|log|diff|show|branch)", "git read"),
    (r"^git\s+ls-files", "git read"),
    (r"^git\s+remote", "git read"),
    # Development tools
    (r"^npm\s+(list|ls|view|info)", "npm read"),
    (r"^yarn\s+(list|info)", "yarn read"),
    (r"^go\s+(version|env|list)", "go read"),
    (r"^docker\s+(ps|images|inspect)", "docker read"),
    (r"^docker\s+compose\s+(ps|config)", "docker read"),
    # Text processing
    (r"^echo(\s|$)", "text"),
    (r"^wc(\s|$)", "text"),
    (r"^sort(\s|$)", "text"),
    (r"^uniq(\s|$)", "text"),
    (r"^cut(\s|$)", "text"),
    (r"^awk(\s|$)", "text"),
    (r"^sed\s+[^-]", "sed without flags"),
    # Network
    (r"^ping(\s|$)", "network"),
    (r"^traceroute(\s|$)", "network"),
    (r"^nslookup(\s|$)", "network"),
    (r"^dig(\s|$)", "network"),
    (r"^host(\s|$)", "network"),
    (r"^curl\s+[^|]", "http fetch"),
    (r"^wget\s+[^|]", "http fetch"),
    (r"^netstat(\s|$)", "network"),
    (r"^ss(\s|$)", "network"),
    (r"^ifconfig(\s|$)", "network"),
    (r"^ip\s+(addr|route|link)", "network"),
    # Disk usage
    (r"^df(\s|$)", "disk usage"),
    (r"^du(\s|$)", "disk usage"),
    (r"^free(\s|$)", "memory usage"),
    (r"^lsof(\s|$)", "open files"),
)

DANGEROUS_PATTERNS: tuple[tuple[str, str], ...] = (
    # Chaining, substitution and redirection
    (r";", "Command chaining with ;"),
    (r"(?m)\s&\s|&$", "Background job operator"),
    (r"\$\(", "Command substitution $()"),
    (r"`", "Command substitution with backticks"),
    (r"\|\|", "Logical OR chaining"),
    (r"&&", "Logical AND chaining"),
    (r"(?:^|\s|[a-zA-Z0-9])(?:[0-9]*[<>]{1,2})\s*[^&|;]+", "Redirection"),
    (r"[>\s]+/(?:etc|dev|proc|sys|boot|root)(?:/|$)", "System path target"),
    (r"\bfind\b.*-exec\b", "find -exec"),
    (r"\b(curl|wget)\b.*\s(-o|--output|-O)\b", "Download to file"),
    (r"\bsed\b.*[\s;]e\b", "sed execute command"),
    # Permissions
    (r"\bchmod\s+.*(\+x|=[^,]*x)", "Grant execute permission"),
    (r"\bchmod\s+[0-7]*[1357][0-7]{2}\b", "Numeric mode with execute bits"),
    # Destructive filesystem operations
    (r"\brm\s+-[rR]f", "Recursive forced delete"),
    (r"\brm\s+.*-[rR].*f", "Recursive forced delete"),
    (r"\brm\s+(-[rR]\s+)?/", "Delete absolute path"),
    (r"\bfind\b.*-delete\b", "find -delete"),
    (r"\bxargs\s+rm\b", "Mass delete via xargs"),
    (r"\bmkfs\b", "Filesystem format"),
    (r"\bdd\s+.*of=/dev/", "Raw device write"),
    (r"\bfdisk\b", "Partition editing"),
    (r"\bparted\b", "Partition editing"),
    (r":\s*,\s*\$\s*d\b", "Delete all lines"),
    (r"\btruncate\s+-s\s*0", "Truncate to zero"),
    # Privilege escalation
    (r"\bsudo\b", "Privilege escalation"),
    (r"\bsu\s", "Privilege escalation"),
    (r"\bdoas\b", "Privilege escalation"),
    (r"\bchown\s+.*root", "Ownership change to root"),
    # Code execution
    (r"\|\s*(sh|bash|zsh|fish)\b", "Pipe to shell"),
    (r"\beval\s", "eval"),
    (r"\bexec\s", "exec"),
    (r"\bcurl\b.*\|\s*(sh|bash)", "Remote script execution"),
    (r"\bwget\b.*\|\s*(sh|bash)", "Remote script execution"),
    (r"\bsource\s+/dev/(tcp|udp)", "Network source"),
    (r"\.\s+/dev/(tcp|udp)", "Network source"),
    (r"\bperl\s+-e", "Inline perl"),
    (r"\bpython\s+-c", "Inline python"),
    (r"\bruby\s+-e", "Inline ruby"),
    (r"\bawk\s+.*system\(", "awk system()"),
    (r":\(\)\s*\{.*:\|:", "Fork bomb"),
    # System control
    (r"\b(systemctl|service)\s+(stop|disable|mask)", "Service control"),
    (r"\breboot\b", "System control"),
    (r"\bshutdown\b", "System control"),
    (r"\bhalt\b", "System control"),
    (r"\bpoweroff\b", "System control"),
    (r"\bkillall\b", "Process kill"),
    (r"\bpkill\b", "Process kill"),
    (r"\bkill\s+-9", "Forced process kill"),
    (r"\binit\s+[016]", "Runlevel change"),
    # Package removal
    (r"\bapt(-get)?\s+(remove|purge|autoremove)", "Package removal"),
    (r"\byum\s+(remove|erase)", "Package removal"),
    (r"\bdnf\s+(remove|erase)", "Package removal"),
    (r"\bpacman\s+-R", "Package removal"),
    (r"\bbrew\s+(uninstall|remove)", "Package removal"),
    (r"\bnpm\s+(uninstall|remove)\s+-g", "Global package removal"),
    # Mounts
    (r"\bumount\s+/", "Unmount"),
    (r"\bfsck\b", "Filesystem check"),
    (r"\bmount\s+.*-o.*rw", "Read-write mount"),
    # Databases
    (r"\b(mysql|psql|mongo).*drop\s+(database|table)", "Database drop"),
    (r"\bDROP\s+(DATABASE|TABLE)\b", "SQL DROP"),
    # Containers
    (r"\bdocker\s+(rm|rmi)\s+.*-f", "Forced container removal"),
    (r"\bdocker\s+system\s+prune\s+.*-a", "Docker prune all"),
    (r"\bkubectl\s+delete", "Kubernetes delete"),
    (r"\bdocker\s+compose\s+down\s+.*-v", "Volume removal"),
    # Git
    (r"\bgit\s+push\s+.*--force", "Force push"),
    (r"\bgit\s+clean\s+.*-[fFdDxX]", "git clean"),
    (r"\bgit\s+reset\s+.*--hard", "Hard reset"),
    (r"\bgit\s+branch\s+.*-D", "Force branch delete"),
    # Scheduled tasks
    (r"\bcrontab\s+-r", "Remove crontab"),
)


@dataclass(frozen=True)
class RiskRule:
    """A compiled pattern. Its source text identifies it in assessment flags."""

    regex: re.Pattern[str]
    reason: str

    @property
    def id(self) -> str:
        return self.regex.pattern

    def matches(self, command: str) -> bool:
        return self.regex.search(command) is not None


def compile_rules(patterns: tuple[tuple[str, str], ...]) -> tuple[RiskRule, ...]:
    return tuple(RiskRule(re.compile(pattern), reason) for pattern, reason in patterns)


SAFE_RULES = compile_rules(SAFE_PATTERNS)
DANGEROUS_RULES = compile_rules(DANGEROUS_PATTERNS)


def classify(command: str) -> RiskAssessment:
    """Assign a risk tier to *command*.

    Every dangerous rule is evaluated and all matches are reported. Safe
    rules are only consulted when nothing dangerous matched.
    """
    command = command.strip()
    if not command:
        return RiskAssessment(RiskLevel.SAFE)

    dangerous = [rule for rule in DANGEROUS_RULES if rule.matches(command)]
    if dangerous:
        reasons = tuple(dict.fromkeys(rule.reason for rule in dangerous))
        logger.debug("Dangerous command %r: %s", command, ", ".join(reasons))
        return RiskAssessment(RiskLevel.DANGER, tuple(rule.id for rule in dangerous), reasons)

    for rule in SAFE_RULES:
        if rule.matches(command):
            return RiskAssessment(RiskLevel.SAFE, (rule.id,), (rule.reason,))

    return RiskAssessment(RiskLevel.UNKNOWN)
