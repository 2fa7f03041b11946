"""Prompt templates for gap remediation."""

# =============================================================================
# SHARED FRAGMENTS
# =============================================================================

_FOCUS = (
    "Focus on the gaps. "
    "Do NOT regenerate content that was already correct.\n"
)

_OUTPUT_RULES = (
    "Respond with ONLY valid JSON. No markdown, no explanation, no extra text.\n"
)

_EMPTY_RESULT = (
    'If nothing can be fixed, return: {{"improvements":[],"updatedArtifacts":[]}}\n'
)


# =============================================================================
# GAP REMEDIATION: targeted fixes for a reviewed output
# =============================================================================

GAP_ADDRESSING_PROMPT = (
    "You previously produced output for this task, "
    "but self-review identified gaps that need to be addressed.\n"
    "\n"
    "ORIGINAL TASK:\n"
    "{task}\n"
    "\n"
    "CURRENT OUTPUT SUMMARY:\n"
    "{summary}\n"
    "\n"
    "GAPS TO ADDRESS:\n"
    "{gaps}\n"
    "\n"
    "Provide ONLY the improvements needed to address these gaps. For each gap:\n"
    "1. Acknowledge the issue\n"
    "2. Provide the corrected or additional content\n"
    "3. Explain how the fix addresses the gap\n"
    "\n" + _FOCUS + "\n" + _OUTPUT_RULES + _EMPTY_RESULT + "\n"
    "Required format:\n"
    '{{"improvements":[{{"gapId":"<gap id>","fixed":true,'
    '"description":"what was fixed","content":"new or updated content"}}],'
    '"updatedArtifacts":[{{"path":"<artifact path>",'
    '"content":"updated content","type":"<artifact type>"}}],'
    '"result":{{}}}}\n'
    "\n"
    "Include \"result\" only when the structured result itself changes; "
    "it is merged key by key into the existing result.\n"
    "\n"
    "Example:\n"
    '{{"improvements":[{{"gapId":"3f2c","fixed":true,'
    '"description":"Added mockup for the settings screen",'
    '"content":"<main><h1>Settings</h1></main>"}}],'
    '"updatedArtifacts":[{{"path":"mockups/settings.html",'
    '"content":"<main><h1>Settings</h1></main>","type":"mockup"}}]}}'
)
