"""
Prompt Templates

Every prompt the engine sends to the reasoning provider.
Each prompt opens with a fixed phrase so scripted providers can route on it.
"""

import json
from typing import Any

SYSTEM_PROMPT = (
    "You are an expert autonomous software engineering agent. "
    "You analyze, decompose, execute, and reflect on complex tasks."
)

DECOMPOSITION_PROMPT = """Analyze this task and determine if it needs to be broken down into subtasks.

Task: {description}

Context: {context}

Rules:
1. If the task is simple and can be done in one step, respond with: {{"needsDecomposition": false}}
2. If the task is complex, break it into 2-{max_subtasks} subtasks
3. Each subtask should be concrete and actionable
4. Subtasks should be ordered by dependency; list dependencies as indices of earlier subtasks

Respond in JSON:
```json
{{
    "needsDecomposition": true,
    "reasoning": "explanation",
    "subtasks": [
        {{
            "description": "subtask description",
            "context": {{}},
            "dependencies": []
        }}
    ]
}}
```"""

EXECUTION_PROMPT = """Execute this task and provide the result.

Task: {description}

Context: {context}

Provide your response as:
1. The actual output/code/result
2. A brief explanation of what was done

Format:
```json
{{
    "output": "the actual result, code, or output",
    "explanation": "what was done",
    "confidence": 0.0,
    "artifacts": ["list of created/modified items"]
}}
```"""

REFLECTION_PROMPT = """Reflect on this task execution and evaluate the result.

Task: {description}

Result: {result}

Previous attempts: {attempts}
Execution history: {history}

Evaluate:
1. Is the result correct and complete?
2. Are there any issues or improvements needed?
3. Should we retry with a different approach?
4. Should we rollback changes?

Respond in JSON:
```json
{{
    "isSuccessful": true,
    "issues": ["list of issues found"],
    "suggestions": ["improvements for next time"],
    "shouldRetry": false,
    "shouldRollback": false,
    "modifiedApproach": "new approach if shouldRetry is true"
}}
```"""

CORRECTION_PROMPT = """A task execution failed. Analyze the error and suggest corrections.

Task: {description}
Error: {error}
Previous context: {context}
Attempts so far: {attempts}

Provide corrections as JSON:
```json
{{
    "diagnosis": "what went wrong",
    "corrections": {{
        "key": "value pairs to add/modify in context"
    }},
    "newApproach": "modified approach description if needed"
}}
```"""


def dump(value: Any) -> str:
    """Render a value for inclusion in a prompt."""
    return json.dumps(value, indent=2, default=str)
