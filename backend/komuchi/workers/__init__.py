"""
Background processing run by the RQ worker.

    pipeline.py  process_transcription_job / process_debrief_job (async, take a session)
    tasks.py     sync RQ entrypoints that run the pipeline in a fresh event loop
"""
