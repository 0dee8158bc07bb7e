"""Mock responses for testing without API calls."""

# Shaped like a real analysis response: fenced JSON with a trailing remark
MOCK_FINDINGS_RESPONSE = """```json
{
  "blockers": [],
  "important": [
    {
      "title": "Division by zero on empty input",
      "details": "`calculate_average` divides by `len(numbers)` without checking for an empty list.",
      "files": ["stats.py"],
      "suggested_fix": "Return 0 or raise ValueError when `numbers` is empty."
    }
  ],
  "suggestions": [],
  "test_gaps": [
    {
      "title": "No test for empty list",
      "details": "Only the happy path is covered.",
      "files": ["tests/test_stats.py"],
      "suggested_test": "assert calculate_average([]) == 0"
    }
  ],
  "security": [],
  "performance": [],
  "reliability": [],
  "summary": ["Small change to averaging helper.", "One edge case is unhandled."]
}
```"""

MOCK_REPORT_RESPONSE = """## 🚨 Blockers
- None found

## ✅ Important
- **stats.py**: `calculate_average` divides by zero on an empty list.

## 🧪 Tests to add
- **tests/test_stats.py**: cover the empty-list case.

## 🔐 Security / Privacy
- None found

## ⚡ Performance
- None found

## 🧯 Reliability / Ops
- None found

## 📝 Suggestions
- None

## ✅ Merge Recommendation
✅ Safe to merge
"""
