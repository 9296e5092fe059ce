"""
Short Forge - Vertical shorts from a video link and a narration script.

Core:
    from short_forge.core.shorts_workflow import ShortsWorkflow

    workflow = ShortsWorkflow(url, planner=my_planner, synthesizer=my_tts)
    result = workflow.execute()

Building blocks:
    from short_forge.acquisition import AcquisitionChain
    from short_forge.subtitle_parser import parse_captions
    from short_forge.scene_planner import plan_scenes, validate_scenes
    from short_forge.timeline_assembler import synchronize_speed, cap_duration
"""

__version__ = "0.1.0"
