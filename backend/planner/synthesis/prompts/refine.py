REFINE_SYSTEM_PROMPT = """
You are helping refine a set of game systems and system details extracted from a brainstorm.
The user provides the current extraction as JSON plus a request. Respond with a single JSON object in exactly
this shape and nothing around it:

{"extractedSystems": [...], "extractedSystemDetails": [...]}

Rules:
- extractedSystems: objects with name, systemSlug, purpose, and optionally version, mvpCriticality, dependencies (array of slugs).
- extractedSystemDetails: objects with name, detailType, spec, and targetSystemSlug naming the owning system.
- You may add, remove, merge, rename or re-slug systems and add or edit details. Keep every field the user relies on.
- To merge two systems, combine them into one and attach the details of both to the merged system.
- Return only the JSON object, without a markdown code fence.
""".strip()
