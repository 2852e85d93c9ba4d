"""Constants for search result fetching and page extraction."""

# Candidate URLs ending in these extensions are never fetched
EXCLUDED_FETCH_EXTENSIONS = (
    # documents
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "pot", "potx",
    "odt", "ods", "odp", "rtf", "txt", "csv", "epub",
    # archives
    "zip", "rar", "7z", "tar", "gz", "tgz", "bz2", "xz",
    # images
    "jpg", "jpeg", "png", "gif", "bmp", "webp", "svg", "ico", "tif", "tiff", "wmf",
    # executables / binaries
    "exe", "dll", "bin", "msi", "dmg", "apk", "iso", "deb", "rpm",
    # media
    "mp3", "mp4", "wav", "wmv", "avi", "mov", "mkv", "webm", "flac", "ogg", "m4a",
)

# Path/query patterns of download handlers, auth/commerce flows and search pages
EXCLUDED_PATH_PATTERNS = (
    r"viewcontent",
    r"download",
    r"servefile",
    r"\.cgi(?:$|[/?])",
    r"/(?:login|logout|signin|sign-in|signup|sign-up|register|auth|oauth|sso)(?:$|[/?._-])",
    r"/(?:cart|basket|checkout|account|my-account)(?:$|[/?._-])",
    r"/search(?:$|[/?])",
    r"[?&](?:q|query|search|s)=",
)

# Same-origin links pointing at these extensions are not exposed for traversal
EXCLUDED_LINK_EXTENSIONS = (
    "js", "css", "png", "jpg", "jpeg", "gif", "wmv", "mp3", "mp4", "wav",
    "pdf", "doc", "docx", "xls", "zip", "rar", "exe", "dll", "bin",
    "ppt", "pptx", "pot", "potx", "wmf", "rtf", "webp", "webm",
)

# Structural and class-based boilerplate removed before text conversion
BOILERPLATE_SELECTORS = (
    "script", "style", "noscript", "template", "iframe", "object", "embed",
    "svg", "canvas",
    "header", "nav", "footer", "aside",
    "form", "button", "input", "select", "textarea",
    "[hidden]", "[aria-hidden='true']",
    "[style='display:none']", "[style='display: none']",
    ".ads", ".ad", ".advertisement", ".banner",
    ".comments", "#comments",
    ".social-media", ".share-buttons", ".related-posts",
    ".sidebar", ".menu", ".navigation",
    ".author-info", ".metadata", ".tags", ".categories", ".pagination",
    ".cookie-notice", ".cookie-banner", "#cookie-banner", "[class*='cookie-consent']",
    ".newsletter-signup", ".newsletter",
    ".popup", ".modal", "[role='dialog']",
)

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")

# English stopwords dropped from extracted text (compared case-insensitively)
ENGLISH_STOPWORDS = frozenset("""
a about above after again against all am an and any are aren't as at
be because been before being below between both but by
can can't cannot could couldn't
did didn't do does doesn't doing don't down during
each few for from further
had hadn't has hasn't have haven't having he he'd he'll he's her here here's
hers herself him himself his how how's
i i'd i'll i'm i've if in into is isn't it it's its itself
let's me more most mustn't my myself
no nor not of off on once only or other ought our ours ourselves out over own
same shan't she she'd she'll she's should shouldn't so some such
than that that's the their theirs them themselves then there there's these they
they'd they'll they're they've this those through to too
under until up very
was wasn't we we'd we'll we're we've were weren't what what's when when's where
where's which while who who's whom why why's will with without won't would wouldn't
you you'd you'll you're you've your yours yourself yourselves
also just may might must shall
""".split())

# Browser-like request headers for page fetches
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# Retry policy
RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})
MAX_FETCH_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 2.0
MIN_CONTENT_CHARS = 100

# Output formatting
SECTION_SEPARATOR = "-" * 79
DEFAULT_MAX_TOTAL_CHARS = 200000
MAX_SEARCH_RESULTS = 10
