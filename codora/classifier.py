"""
Complexity Classifier for Codora.

Scores how hard a code snippet is to explain, so the gateway can send
easy snippets to the economy tier and hard ones to the premium tier.
"""

import re
from dataclasses import dataclass, field


# Per-language adjustment. Unlisted languages get 0.
LANGUAGE_ADJUSTMENTS: dict[str, float] = {
    "haskell": 0.12,
    "rust": 0.10,
    "cpp": 0.10,
    "c++": 0.10,
    "scala": 0.10,
    "c": 0.08,
    "typescript": 0.05,
    "typescriptreact": 0.05,
    "java": 0.05,
    "csharp": 0.05,
    "kotlin": 0.04,
    "go": 0.03,
    "javascript": 0.03,
    "javascriptreact": 0.03,
    "python": 0.02,
    "ruby": 0.02,
    "php": 0.0,
    "html": -0.03,
    "css": -0.03,
    "markdown": -0.05,
    "json": -0.05,
    "yaml": -0.05,
    "plaintext": -0.05,
}

DOMAIN_KEYWORDS = (
    "algorithm", "architecture", "security", "authentication", "authorization",
    "encryption", "cryptograph", "concurrency", "parallel", "distributed",
    "optimization", "performance", "recursion", "compiler", "protocol",
)

BUSINESS_KEYWORDS = (
    "business", "workflow", "validation", "billing", "checkout", "order",
)


@dataclass
class ComplexityBreakdown:
    """Per-component contributions to a complexity score."""
    length: float
    lines: float
    nesting: float
    patterns: float
    language: float
    definitions: float
    context: float
    max_depth: int
    pattern_hits: dict[str, int] = field(default_factory=dict)

    @property
    def raw_total(self) -> float:
        return (
            self.length + self.lines + self.nesting + self.patterns
            + self.language + self.definitions + self.context
        )

    @property
    def score(self) -> float:
        return max(0.0, min(1.0, self.raw_total))


class ComplexityClassifier:
    """
    Deterministic 0..1 complexity estimate for a code snippet.

    Factors:
    - Length and line count
    - Maximum brace nesting depth
    - Complex language constructs (async, generics, decorators, ...)
    - Declared language
    - Number of function/method definitions
    - Domain keywords in the surrounding context
    """

    def __init__(self):
        self._patterns: dict[str, re.Pattern] = {
            "async": re.compile(r"\basync\b|\bawait\b"),
            "promise_chain": re.compile(r"\.then\s*\(|\.catch\s*\(|\.finally\s*\("),
            "inheritance": re.compile(r"\bextends\b|\bimplements\b|\bsuper\s*\("),
            "generics": re.compile(r"\b[A-Z]\w*<\s*[\w\[\], ?]+>"),
            "decorators": re.compile(r"^\s*@\w+", re.MULTILINE),
            "regex_literals": re.compile(r"(?<![\w)\]])/(?![/*\s])(?:\\.|[^/\n\\])+/[gimsuy]*"),
            "error_handling": re.compile(r"\btry\b|\bcatch\b|\bexcept\b|\bfinally\b"),
            "branching": re.compile(r"\belse\s+if\b|\belif\b|\bswitch\b|\bmatch\b|\bcase\b"),
            "advanced_loops": re.compile(r"\bfor\s+await\b|\bwhile\b|\.map\s*\(|\.reduce\s*\(|\.filter\s*\(|\byield\b"),
        }
        self._definition_pattern = re.compile(
            r"\bfunction\b|\bdef\s+\w+|\bfn\s+\w+|\bfunc\s+\w+|=>"
            r"|^\s*(?:public|private|protected|static)\s+[\w<>\[\]]+\s+\w+\s*\(",
            re.MULTILINE,
        )

    def score(self, code: str, context: str = "", language: str = "") -> float:
        """
        Compute complexity score (0.0 to 1.0).

        Args:
            code: Snippet being explained.
            context: Free-text context supplied by the caller.
            language: Language tag, e.g. "python".

        Returns:
            Clamped score. Identical inputs always give identical output.
        """
        return self.analyze(code, context, language).score

    def analyze(self, code: str, context: str = "", language: str = "") -> ComplexityBreakdown:
        """Score with each component broken out."""
        text = code.strip()

        # Length factor (up to 0.15)
        length = min(len(text) / 3000, 1.0) * 0.15

        # Line count factor (up to 0.10)
        line_count = text.count("\n") + 1 if text else 0
        lines = min(line_count / 60, 1.0) * 0.10

        # Nesting factor (up to 0.15)
        max_depth = self._max_nesting_depth(text)
        nesting = min(max_depth / 6, 1.0) * 0.15

        # Complex constructs (0.05 per pattern, 0.25 total)
        pattern_hits = {}
        patterns = 0.0
        for name, pattern in self._patterns.items():
            hits = len(pattern.findall(text))
            if hits:
                pattern_hits[name] = hits
                patterns += min(hits * 0.02, 0.05)
        patterns = min(patterns, 0.25)

        language_adj = LANGUAGE_ADJUSTMENTS.get(language.strip().lower(), 0.0)

        # Definition sites (up to 0.10)
        definitions = min(len(self._definition_pattern.findall(text)) / 8, 1.0) * 0.10

        context_score = self._context_score(context)

        return ComplexityBreakdown(
            length=length,
            lines=lines,
            nesting=nesting,
            patterns=patterns,
            language=language_adj,
            definitions=definitions,
            context=context_score,
            max_depth=max_depth,
            pattern_hits=pattern_hits,
        )

    @staticmethod
    def _max_nesting_depth(text: str) -> int:
        depth = 0
        deepest = 0
        for ch in text:
            if ch == "{":
                depth += 1
                deepest = max(deepest, depth)
            elif ch == "}":
                depth = max(0, depth - 1)
        return deepest

    @staticmethod
    def _context_score(context: str) -> float:
        lowered = context.lower()
        domain = sum(1 for kw in DOMAIN_KEYWORDS if kw in lowered)
        business = sum(1 for kw in BUSINESS_KEYWORDS if kw in lowered)
        return min(domain * 0.08, 0.20) + min(business * 0.03, 0.06)


DEFAULT_CLASSIFIER = ComplexityClassifier()


def score(code: str, context: str = "", language: str = "") -> float:
    """Score with the shared default classifier."""
    return DEFAULT_CLASSIFIER.score(code, context, language)
