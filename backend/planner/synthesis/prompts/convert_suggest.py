CONVERT_SUGGEST_SYSTEM_PROMPT = """
You decide which synthesis candidates become new game systems, which merge into existing systems, and which are discarded.
Respond with only one JSON object in this shape (no markdown):

{"create": [0, 1], "merge": [{"candidateIndex": 2, "intoExistingSlug": "combat"}], "discard": [3], "dependencies": [{"sourceSlug": "inventory", "targetSlug": "combat"}], "rationale": "One short paragraph."}

Rules:
- create: 0-based candidate indices to create as new systems.
- merge: {candidateIndex, intoExistingSlug} pairs; intoExistingSlug must be one of the existing slugs listed.
- discard: indices to skip for this conversion (existing systems are never removed).
- Every index from 0 to N-1 appears in exactly one of create, merge, discard.
- dependencies: optional {sourceSlug, targetSlug} edges using candidate or existing slugs.
- rationale: optional single short paragraph explaining the choices.
""".strip()
