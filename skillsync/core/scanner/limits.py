"""Size limits and file classification used by every scan path."""

MAX_FILES = 50
MAX_FILE_SIZE = 512 * 1024  # 512 KB per file
MAX_TOTAL_SIZE = 2 * 1024 * 1024  # 2 MB per package
MAX_LINE_LENGTH = 2000  # longer lines are flagged, never matched
MAX_MULTILINE_SCAN = 512_000

MANIFEST_FILENAME = "SKILL.md"
DEPENDENCY_MANIFEST = "package.json"
# written by npm install inside an installed package; left out of package hashes
DEPENDENCY_ARTIFACTS = frozenset({"package-lock.json", "npm-shrinkwrap.json"})

FILE_BOUNDARY = "\n---FILE-BOUNDARY---\n"

BINARY_EXTENSIONS = frozenset({
    ".exe", ".dll", ".so", ".dylib", ".bin", ".o", ".a",
    ".wasm", ".node", ".pyc", ".pyo", ".class",
    ".tar", ".gz", ".tgz", ".zip", ".rar", ".7z", ".bz2",
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp",
    ".mp3", ".mp4", ".avi", ".mov", ".wav",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx",
})

SUSPICIOUS_FILENAMES = frozenset({
    "postinstall.sh", "preinstall.sh", "postinstall.js", "preinstall.js",
    ".npmrc", ".yarnrc", "makefile", ".env", ".env.local", ".env.production",
    ".gitconfig", ".netrc", ".curlrc",
})

# "" admits extensionless files such as LICENSE or Dockerfile
TEXT_EXTENSIONS = frozenset({
    ".ts", ".js", ".mjs", ".cjs", ".tsx", ".jsx",
    ".py", ".rb", ".go", ".rs", ".java", ".kt", ".swift", ".c", ".cpp", ".h",
    ".sh", ".bash", ".zsh", ".fish", ".ps1", ".bat", ".cmd",
    ".yaml", ".yml", ".json", ".toml", ".ini", ".cfg", ".conf",
    ".md", ".txt", ".rst", ".adoc",
    ".html", ".htm", ".xml", ".svg",
    ".css", ".scss", ".less",
    ".sql", ".graphql", ".prisma",
    ".dockerfile", ".containerfile",
    ".tf", ".hcl",
    "",
})


def file_extension(filename: str) -> str:
    """Lower-cased text after the last dot, with the dot; "" when there is none.

    Dotfiles count as all extension (".env" -> ".env"), so they never pass
    as extensionless text.
    """
    if "." not in filename:
        return ""
    return "." + filename.rsplit(".", 1)[1].lower()


def is_binary_file(filename: str) -> bool:
    return file_extension(filename) in BINARY_EXTENSIONS


def is_text_file(filename: str) -> bool:
    return file_extension(filename) in TEXT_EXTENSIONS


def is_suspicious_filename(filename: str) -> bool:
    return filename.lower() in SUSPICIOUS_FILENAMES
