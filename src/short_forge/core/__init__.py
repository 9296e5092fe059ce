"""
Short Forge Core Module

Contains the job pipeline plumbing:
- cmd_runner: subprocess execution with timeouts and cancellation
- ffmpeg_atomics: temp-then-rename ffmpeg writes, concat list files
- job: Job, JobState and artifact handles
- shorts_workflow: ShortsWorkflow orchestrator and JobRunner

Import from the submodules directly; this package does not re-export them
so that leaf modules can use cmd_runner without pulling in the workflow.
"""
