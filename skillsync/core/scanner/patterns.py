"""
Threat signature catalog.

Three ordered, immutable lists:
  - CRITICAL_PATTERNS: per-line, any match blocks installation
  - CRITICAL_MULTILINE_PATTERNS: matched against the whole (capped) content
    to catch commands split across lines with a trailing backslash
  - WARNING_PATTERNS: per-line, flagged for review

The catalog is data only. Matching lives in content_scanner.
"""

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

CRITICAL = "critical"
WARNING = "warning"


@dataclass(frozen=True)
class ThreatSignature:
    """One compiled threat pattern"""

    regex: Pattern
    severity: str  # "critical" | "warning"
    description: str
    category: str
    multiline: bool = False

    @property
    def source(self) -> str:
        return self.regex.pattern

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


def _compile(severity: str, entries, multiline: bool = False) -> Tuple[ThreatSignature, ...]:
    signatures = []
    for entry in entries:
        pattern, description, category = entry[:3]
        flags = entry[3] if len(entry) > 3 else 0
        if multiline:
            flags |= re.MULTILINE
        signatures.append(
            ThreatSignature(
                regex=re.compile(pattern, flags),
                severity=severity,
                description=description,
                category=category,
                multiline=multiline,
            )
        )
    return tuple(signatures)


# ---------------------------------------------------------------------------
# Critical: (regex, description, category[, flags])
# ---------------------------------------------------------------------------

_CYRILLIC = r"\u0430\u0435\u043E\u0440\u0441\u0445\u0456\u0458\u0455\u04BB"
_GREEK = (
    r"\u03B1\u03B5\u03BF\u03C1\u03BA\u03BD\u03C4"
    r"\u0391\u0392\u0395\u0396\u0397\u039A\u039C\u039D\u039F\u03A1\u03A4"
)

_CRITICAL_SOURCE = [
    # Prompt injection
    (r"ignore\s+(?:all\s+)?(?:previous|prior|above)\s+instructions",
     "Prompt injection: attempts to override AI instructions", "prompt-injection", re.IGNORECASE),
    (r"you\s+(?:are|must)\s+now\s+(?:a|an|ignore)",
     "Prompt injection: role reassignment attack", "prompt-injection", re.IGNORECASE),
    (r"system\s*(?:prompt|instruction|message)\s*:",
     "Prompt injection: fake system prompt in content", "prompt-injection", re.IGNORECASE),
    (r"\[INST\]|\[/INST\]|<\|im_start\|>|<\|im_end\|>|<\|system\|>",
     "Prompt injection: LLM control tokens in content", "prompt-injection", re.IGNORECASE),
    (r"<!--\s*(?:SYSTEM|INSTRUCTION|PROMPT|IGNORE|OVERRIDE)",
     "Prompt injection: hidden instructions in HTML comments", "prompt-injection", re.IGNORECASE),
    (r"\u200B|\u200C|\u200D|\u2060|\uFEFF",
     "Prompt injection: zero-width Unicode characters hiding content", "prompt-injection"),
    (r"\u202A|\u202B|\u202C|\u202D|\u202E|\u2066|\u2067|\u2068|\u2069",
     "Prompt injection: bidirectional text override characters", "prompt-injection"),

    # Homoglyphs
    (rf"\A(?=.*[{_CYRILLIC}])(?=.*[a-zA-Z])",
     "Prompt injection: Cyrillic homoglyph characters mixed with ASCII (visual spoofing)", "prompt-injection"),
    (rf"\A(?=.*[{_GREEK}])(?=.*[a-zA-Z])",
     "Prompt injection: Greek homoglyph characters mixed with ASCII (visual spoofing)", "prompt-injection"),
    (r"[\u0250-\u02AF\u1D00-\u1D7F\u2100-\u214F\uFF01-\uFF5E]",
     "Prompt injection: Unicode confusable characters from IPA/letterlike/fullwidth ranges", "prompt-injection"),

    # Destructive shell
    (r"rm\s+-[a-z]*r[a-z]*f[a-z]*\s+/", "Destructive removal of root filesystem", "destructive"),
    (r"rm\s+-[a-z]*f[a-z]*r[a-z]*\s+/", "Destructive removal of root filesystem (flag reorder)", "destructive"),
    (r"chmod\s+777", "Setting overly permissive file permissions", "destructive"),
    (r"mkfs\b", "Filesystem format command detected", "destructive"),
    (r"dd\s+if=", "Low-level disk write command detected", "destructive"),
    (r":\(\)\s*\{\s*:\|:&\s*\}\s*;:", "Fork bomb detected", "destructive"),

    # Remote code execution / exfiltration
    (r"curl\s+[^|]*\|\s*(?:sh|bash|zsh|ksh)", "Remote code execution via curl pipe to shell", "rce"),
    (r"wget\s+[^|]*\|\s*(?:sh|bash|zsh|ksh)", "Remote code execution via wget pipe to shell", "rce"),
    (r"curl\s+[^|]*\$[({][^)]*(?:KEY|TOKEN|SECRET|PASSWORD|CRED)",
     "Exfiltrating secrets via curl", "exfiltration", re.IGNORECASE),

    # Reverse shells
    (r"bash\s+-i\s+>&?\s*/dev/tcp/", "Reverse shell via bash /dev/tcp", "reverse-shell"),
    (r"nc\s+(?:-[a-z]+\s+)*-e\s+/bin/(?:sh|bash)", "Reverse shell via netcat", "reverse-shell"),
    (r"ncat\s.*-e\s+/bin/", "Reverse shell via ncat", "reverse-shell"),
    (r"socat\s.*exec:", "Reverse shell via socat", "reverse-shell", re.IGNORECASE),
    (r"python[23]?\s+-c\s+['\"]import\s+(?:socket|os|subprocess)",
     "Reverse shell via Python one-liner", "reverse-shell"),
    (r"php\s+-r\s+['\"].*fsockopen", "Reverse shell via PHP", "reverse-shell"),
    (r"ruby\s+-r?socket\s+-e", "Reverse shell via Ruby", "reverse-shell"),
    (r"perl\s+-e\s+['\"].*socket", "Reverse shell via Perl", "reverse-shell", re.IGNORECASE),
    (r"/dev/tcp/\d", "Bash /dev/tcp redirection for network access", "reverse-shell"),

    # Credential theft
    (r"[~$](?:HOME)?/\.ssh/", "Accessing SSH keys directory", "credential-theft"),
    (r"[~$](?:HOME)?/\.aws/", "Accessing AWS credentials directory", "credential-theft"),
    (r"[~$](?:HOME)?/\.gnupg/", "Accessing GPG keys directory", "credential-theft"),
    (r"[~$](?:HOME)?/\.kube/config", "Accessing Kubernetes credentials", "credential-theft"),
    (r"[~$](?:HOME)?/\.docker/config\.json", "Accessing Docker credentials", "credential-theft"),
    (r"cat\s+.*\.env\b", "Reading environment file with secrets", "credential-theft"),
    (r"wallet\.(?:json|dat)", "Accessing cryptocurrency wallet file", "credential-theft"),
    (r"keychain|keystore|credentials\.json", "Accessing system keychain/keystore",
     "credential-theft", re.IGNORECASE),
    (r"id_rsa|id_ed25519|id_ecdsa", "Directly referencing SSH private key files", "credential-theft"),

    # Supply chain
    (r">\s*package\.json", "Overwriting package.json", "supply-chain"),
    (r"node_modules.*write|write.*node_modules", "Writing to node_modules directory", "supply-chain"),
    (r"\.github/workflows", "Modifying CI/CD workflow files", "supply-chain", re.IGNORECASE),
    (r"npm\s+publish", "Publishing npm package", "supply-chain"),
    (r"\.npmrc.*registry\s*=", "Modifying npm registry (supply chain redirect)", "supply-chain"),
    (r"\.gitconfig.*credential", "Modifying git credential configuration", "supply-chain"),

    # Privilege escalation
    (r"sudo\s+", "Sudo privilege escalation", "privilege-escalation"),
    (r">\s*/etc/", "Writing to system configuration directory", "privilege-escalation"),
    (r">\s*/usr/", "Writing to system binaries directory", "privilege-escalation"),
    (r"chown\s+root", "Changing file ownership to root", "privilege-escalation"),
]

_MULTILINE_SOURCE = [
    (r"curl\s+[^\n]*\\\n\s*\|\s*(?:sh|bash)",
     "Multi-line curl pipe to shell (line-split evasion)", "rce"),
    (r"rm\s+-[a-z]*r[a-z]*f[a-z]*\s*\\\n\s*/",
     "Multi-line rm -rf / (line-split evasion)", "destructive"),
    (r"wget\s+[^\n]*\\\n\s*\|\s*(?:sh|bash)",
     "Multi-line wget pipe to shell (line-split evasion)", "rce"),
]

# ---------------------------------------------------------------------------
# Warning
# ---------------------------------------------------------------------------

_WARNING_SOURCE = [
    # Prompt injection (lower confidence)
    (r"(?:forget|disregard|override)\s+(?:your|all|the)\s+(?:rules|instructions|guidelines)",
     "Possible prompt injection: instruction override language", "prompt-injection", re.IGNORECASE),
    (r"act\s+as\s+(?:if|though|a)\s",
     "Possible prompt injection: role-play directive", "prompt-injection", re.IGNORECASE),
    (r"do\s+not\s+(?:mention|tell|reveal|show)\s+(?:this|the\s+user)",
     "Possible prompt injection: secrecy instruction", "prompt-injection", re.IGNORECASE),

    # Obfuscation
    (r"Buffer\.from\([^)]*,\s*['\"]base64['\"]\)", "Base64 decoding, potential obfuscation", "obfuscation"),
    (r"Buffer\.from\([^)]*,\s*['\"]hex['\"]\)", "Hex decoding, potential obfuscation", "obfuscation"),
    (r"atob\s*\(", "Base64 decoding via atob()", "obfuscation"),
    (r"\\x[0-9a-f]{2}\\x[0-9a-f]{2}\\x[0-9a-f]{2}",
     "Hex escape sequences, potential obfuscation", "obfuscation", re.IGNORECASE),
    (r"base64\s+-d\s*\|", "Shell base64 decode piped to execution", "obfuscation"),
    (r"base64\s+--decode\s*\|", "Shell base64 decode piped to execution", "obfuscation"),
    (r"String\.fromCharCode\s*\(", "Dynamic string construction from char codes", "obfuscation"),

    # Dynamic code execution
    (r"eval\s*\(", "Dynamic code evaluation via eval()", "code-execution"),
    (r"new\s+Function\s*\(", "Dynamic function construction", "code-execution"),
    (r"import\s*\(\s*[^'\"]\s*[^)]*\)", "Dynamic import() with computed module path", "code-execution"),
    (r"require\s*\(\s*[^'\"][^)]*\)", "Dynamic require() with computed module path", "code-execution"),
    (r"process\.binding\s*\(", "Low-level process.binding() bypasses module safety", "code-execution"),
    (r"vm\.(?:runInNewContext|runInThisContext|createScript)\s*\(",
     "VM module code execution", "code-execution"),

    # Child processes
    (r"child_process", "Importing child_process module", "shell-execution"),
    (r"execSync|spawnSync", "Synchronous shell command execution", "shell-execution"),
    (r"exec\s*\(\s*['\"`]", "Executing shell commands", "shell-execution"),

    # Network
    (r"fetch\s*\(\s*['\"`]https?://(?!(?:api\.github\.com|registry\.npmjs\.org|pypi\.org))",
     "Network request to external domain", "network", re.IGNORECASE),
    (r"axios\.\w+\s*\(\s*['\"`]https?://", "HTTP request via axios", "network", re.IGNORECASE),
    (r"net\.connect|dgram\.createSocket", "Raw network socket creation", "network"),
    (r"WebSocket\s*\(\s*['\"`]wss?://",
     "WebSocket connection, potential backdoor channel", "network", re.IGNORECASE),
    (r"new\s+WebSocket\s*\(", "WebSocket instantiation", "network"),
    (r"http\.createServer|https\.createServer|app\.listen\s*\(",
     "Starting a network server/listener", "network"),
    (r"\.listen\s*\(\s*\d{2,5}\s*\)", "Listening on a network port", "network"),

    # DNS exfiltration
    (r"dig\s+.*\$[({]", "DNS exfiltration: variable interpolation in dig", "exfiltration"),
    (r"nslookup\s+.*\$[({]", "DNS exfiltration: variable interpolation in nslookup", "exfiltration"),
    (r"dns\.resolve|dns\.lookup.*\$", "DNS resolution with dynamic input", "exfiltration"),

    # Crypto wallets
    (r"['\"`][13][a-km-zA-HJ-NP-Z1-9]{25,34}['\"`]",
     "Hardcoded Bitcoin address, potential crypto exfiltration", "credential-theft"),
    (r"['\"`]0x[0-9a-fA-F]{40}['\"`]",
     "Hardcoded Ethereum address, potential crypto exfiltration", "credential-theft"),
    (r"(?:fetch|axios\.\w+|XMLHttpRequest)\s*\([^)]*(?:[13][a-km-zA-HJ-NP-Z1-9]{25,34}|0x[0-9a-fA-F]{40})",
     "Crypto wallet address sent via network request: exfiltration attempt", "credential-theft"),

    # Mining
    (r"stratum\+tcp://|stratum://", "Cryptocurrency mining pool connection", "crypto-mining"),
    (r"xmrig|cryptonight|minerd|coinhive|cpuminer",
     "Cryptocurrency mining software detected", "crypto-mining", re.IGNORECASE),

    # Filesystem
    (r"writeFile.*(?:/tmp|/var|~/)", "File write outside project directory", "filesystem"),
    (r"fs\.(?:write|append|create).*(?:/tmp|/var|~/)", "File system write outside project", "filesystem"),
    (r"fs\.symlink|fs\.symlinkSync|ln\s+-s", "Symlink creation, potential symlink attack", "filesystem"),

    # Prototype pollution
    (r"__proto__", "Prototype chain access, potential pollution", "prototype-pollution"),
    (r"constructor\s*\[\s*['\"]prototype['\"]\s*\]", "Prototype access via constructor", "prototype-pollution"),
    (r"Object\.assign\s*\(\s*\{\s*\}\s*,\s*JSON\.parse",
     "Object.assign from parsed JSON, pollution risk", "prototype-pollution"),

    # Time bombs
    (r"setTimeout\s*\(.*,\s*\d{5,}\s*\)", "Long delayed execution (>10s), potential time bomb", "time-bomb"),
    (r"setInterval\s*\(.*,\s*\d{4,}\s*\)", "Periodic execution, potential persistent backdoor", "time-bomb"),

    # Environment tampering
    (r"process\.env\.\w+\s*=", "Modifying process environment variables", "environment"),
    (r"Object\.defineProperty\s*\(\s*(?:globalThis|global|window)",
     "Modifying global object properties", "environment"),
    (r"process\.exit\s*\(", "Forcing process termination", "environment"),

    # Input capture
    (r"navigator\.clipboard|clipboard\.(?:readText|writeText)",
     "Clipboard access, potential data theft", "input-capture", re.IGNORECASE),
    (r"pbcopy|xclip|xsel|wl-copy",
     "System clipboard command, potential data theft", "input-capture", re.IGNORECASE),
    (r"addEventListener\s*\(\s*['\"]key(?:down|up|press)['\"]",
     "Keyboard event listener, potential keylogger", "input-capture", re.IGNORECASE),

    # Dotfile poisoning
    (r">\s*~/\.bashrc|>\s*~/\.zshrc|>\s*~/\.profile|>\s*~/\.bash_profile",
     "Writing to shell RC files, persistent backdoor", "dotfile-poisoning"),
    (r">\s*~/\.npmrc|>\s*~/\.yarnrc", "Writing to package manager config, supply chain risk", "dotfile-poisoning"),
    (r">\s*~/\.gitconfig", "Writing to git config, credential interception risk", "dotfile-poisoning"),
]


CRITICAL_PATTERNS = _compile(CRITICAL, _CRITICAL_SOURCE)
CRITICAL_MULTILINE_PATTERNS = _compile(CRITICAL, _MULTILINE_SOURCE, multiline=True)
WARNING_PATTERNS = _compile(WARNING, _WARNING_SOURCE)


__all__ = [
    "CRITICAL",
    "WARNING",
    "ThreatSignature",
    "CRITICAL_PATTERNS",
    "CRITICAL_MULTILINE_PATTERNS",
    "WARNING_PATTERNS",
]
