import json
import re
from typing import Any


FIELD_DESCRIPTIONS = {
    "keyAchievements": "key professional achievements in a job application",
    "primarySkills": "technical skills description for a job application",
    "motivation": "motivation statement explaining why the candidate is interested in a role",
}

_FENCE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)


def autofill_prompt(resume_text: str) -> str:
    return (
        "Extract structured information from this resume and return ONLY valid JSON "
        "without any additional text or markdown formatting.\n\n"
        f"Resume:\n{resume_text}\n\n"
        "Return this JSON structure, using empty strings for missing data:\n"
        '{"step1": {"fullName": "", "email": "", "phone": "", "location": ""}, '
        '"step2": {"currentPosition": "", "company": "", "yearsOfExperience": 0, "keyAchievements": ""}, '
        '"step3": {"primarySkills": "", "programmingLanguages": "", "frameworksAndTools": ""}}'
    )


def improve_prompt(text: str, field: str) -> str:
    return (
        "You are helping a candidate improve their job application.\n"
        f"Rewrite the following {FIELD_DESCRIPTIONS[field]} to be more professional, "
        "compelling, and well-structured. Keep the same meaning and facts; do not add "
        "information.\n\n"
        f"Original text:\n{text}\n\n"
        "Return ONLY the improved text."
    )


def validate_prompt(form_data: dict[str, Any]) -> str:
    return (
        "You are reviewing a job application form for inconsistencies and missing details.\n\n"
        f"Application Data:\n{json.dumps(form_data, indent=2)}\n\n"
        'Return ONLY a JSON array of issues like [{"field": "step2.yearsOfExperience", '
        '"message": "...", "severity": "warning"}], severity being "warning" or "suggestion". '
        "Return [] if everything looks good."
    )


def parse_json_payload(text: str) -> Any:
    """Decode model output that may be wrapped in a markdown code fence."""
    cleaned = text.strip()
    match = _FENCE.match(cleaned)
    if match:
        cleaned = match.group(1).strip()
    return json.loads(cleaned)
