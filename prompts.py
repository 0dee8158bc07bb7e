"""Prompt templates for the analysis and formatting calls."""

# =============================================================================
# SHARED PREAMBLE
# =============================================================================

_PRINCIPLES = (
    "Principles:\n"
    "- Be HIGH SIGNAL. If something is a nit, label it as NIT and keep it short.\n"
    "- Prefer actionable, concrete findings over general advice.\n"
    "- Do NOT comment on formatting that linters/formatters would catch.\n"
    "- Base your review ONLY on the PR bundle + description + diffs below.\n"
    "- If context is missing, state it as a hypothesis.\n"
)

_OUTPUT_RULES = (
    "Return ONLY valid JSON. No markdown, no explanation, no extra text.\n"
)

_ITEM = '{{"title": "...", "details": "...", "files": ["..."], "suggested_fix": "..."}}'
_TEST_ITEM = '{{"title": "...", "details": "...", "files": ["..."], "suggested_test": "..."}}'
_RISK_ITEM = (
    '{{"severity": "BLOCKER|IMPORTANT|SUGGESTION", "title": "...", '
    '"details": "...", "files": ["..."], "suggested_fix": "..."}}'
)

_FINDINGS_SCHEMA = (
    "Schema:\n"
    "{{\n"
    f'  "blockers": [{_ITEM}],\n'
    f'  "important": [{_ITEM}],\n'
    f'  "suggestions": [{_ITEM}],\n'
    f'  "test_gaps": [{_TEST_ITEM}],\n'
    f'  "security": [{_RISK_ITEM}],\n'
    f'  "performance": [{_RISK_ITEM}],\n'
    f'  "reliability": [{_RISK_ITEM}],\n'
    '  "summary": ["...", "...", "..."]\n'
    "}}\n"
)


# =============================================================================
# ANALYSIS: PR bundle in, findings JSON out
# =============================================================================

ANALYZE_PROMPT = (
    "You are a senior engineer reviewing a PR.\n"
    "\n"
    + _PRINCIPLES
    + "\n"
    + _OUTPUT_RULES
    + _FINDINGS_SCHEMA
    + "\n"
    "Repo context:\n"
    "{context}\n"
    "\n"
    "PR bundle (JSON):\n"
    "{bundle}\n"
)


# =============================================================================
# FORMATTING: findings JSON in, markdown review out
# =============================================================================

MERGE_RECOMMENDATION_HEADER = "## ✅ Merge Recommendation"

REPORT_SECTIONS: tuple[str, ...] = (
    "## 🚨 Blockers",
    "## ✅ Important",
    "## 🧪 Tests to add",
    "## 🔐 Security / Privacy",
    "## ⚡ Performance",
    "## 🧯 Reliability / Ops",
    "## 📝 Suggestions",
)

FORMAT_PROMPT = (
    "Convert the findings JSON into a concise PR review in Markdown.\n"
    "\n"
    "Rules:\n"
    f'- Start with "{REPORT_SECTIONS[0]}" (or "None found")\n'
    + "".join(f'- Then "{header}"\n' for header in REPORT_SECTIONS[1:])
    + f'- End with "{MERGE_RECOMMENDATION_HEADER}" and one line: '
    "✅ Safe to merge / ⚠️ Needs changes / ❌ Do not merge.\n"
    "\n"
    "Every bullet should mention file names when available.\n"
    "No long essays. Keep it skimmable.\n"
    "\n"
    "PR title: {title}\n"
    "Head SHA: {head_sha}\n"
    "\n"
    "Findings JSON:\n"
    "{findings}\n"
)
