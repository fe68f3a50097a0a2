EXTRACTION_INSTRUCTIONS = """
Identify the game systems, and the system details that define them, in the project context and the new brainstorm.
Respond with ONLY one JSON object: no markdown fence, no explanation, and do not repeat the example below.

Required keys:
1. "extractedSystems": array of objects with
   - name
   - systemSlug (lowercase-with-hyphens)
   - purpose (one short sentence)
   - dependencies (array of slugs of the systems this one uses, feeds, or triggers; may be empty)
2. "extractedSystemDetails": array of objects with
   - name
   - detailType (exactly one of: mechanic, input, output, content, ui_hint)
   - spec (markdown describing the detail)
   - targetSystemSlug (the systemSlug of the system the detail belongs to)

Optional keys for gap-filling:
- "suggestedSystems" (same shape as extractedSystems) and "suggestedSystemDetails" (same shape as
  extractedSystemDetails). A system with no dependencies usually means a missing neighbour: suggest it here
  and make the solo system depend on the suggested slug (or the reverse).

Rules:
- Every system MUST have at least one entry in extractedSystemDetails, attached through targetSystemSlug.
- Put the substance of a system into its details (mechanics, inputs, outputs, content, UI hints) rather than into purpose.
- Draw one system per major interface boundary so the result reads as a systems interaction flowchart.
- Dependencies describe interaction flow ("A sends to B", "A triggers B"); they drive the dependency graph.
- Reuse the existing systems and dependency graph from the project context; fit new ideas into existing systems
  when they belong there and propose new systems only when needed.

Example shape (replace with real content):
{
  "extractedSystems": [
    {"name": "Quest Selection", "systemSlug": "quest-selection", "purpose": "Chooses which objectives the guild pursues.", "dependencies": ["combat-encounters"]},
    {"name": "Combat / Encounters", "systemSlug": "combat-encounters", "purpose": "Resolves dungeon rooms and fights.", "dependencies": []}
  ],
  "extractedSystemDetails": [
    {"name": "Objective picker", "detailType": "mechanic", "spec": "Selects the next objective for the guild.", "targetSystemSlug": "quest-selection"},
    {"name": "Encounter resolution", "detailType": "mechanic", "spec": "Resolves combat events room by room.", "targetSystemSlug": "combat-encounters"}
  ],
  "suggestedSystems": [],
  "suggestedSystemDetails": []
}
""".strip()
