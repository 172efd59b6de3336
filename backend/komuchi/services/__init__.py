"""
Komuchi API — Services Layer
=============================

Service Inventory:
    - users_service:       user provisioning and voice profile storage
    - recordings_service:  recording lifecycle and upload completion
    - jobs_service:        TRANSCRIBE / DEBRIEF job bookkeeping
    - job_queue:           RQ enqueueing on Redis
    - object_storage:      local object store with signed upload URLs
    - context_service:     transcript/debrief context for chat
    - chat_service:        chat sessions, openers, replies
    - llm_base / gemini_service / mock_llm_service: AI providers
    - diarization_client:  speaker-embedding extraction over HTTP

Service methods take the AsyncSession as their first argument and flush
rather than commit; the caller owns the transaction. The exception is
recordings_service._start_job, which commits before enqueueing so a worker
never picks up a job row it cannot see.
"""
