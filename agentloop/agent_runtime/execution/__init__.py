"""Execution pipeline for the agent runtime.

This package contains the core execution components:

- **resolver**: Option layering (config file + agent file + Before-All override) and Agent loading
- **input**: Input list construction (strings, file globs) and input labels
- **script**: Hook script evaluation (Python function bodies, worker threads)
- **prompt**: Instruction rendering (Jinja2 templates)
- **chat**: AI call adapter (pydantic-ai direct model requests)
- **services**: Collaborator bundle (script engine, chat client, publisher)
- **stages**: Per-input pipeline (Data -> Instruction -> AI -> Output)
- **coordinator**: Run orchestration (Before-All -> bounded input tasks -> After-All)
"""
