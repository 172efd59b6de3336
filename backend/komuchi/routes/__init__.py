"""
Komuchi API — Routes Package
=============================

Route Inventory:
    - recordings.py:     /api/recordings, /api/jobs/{id}
    - uploads.py:        /api/uploads/{key}   (signed PUT/GET for audio objects)
    - chat.py:           /api/chat/session, /api/chat/opener, /api/chat/message
    - voice_profile.py:  /api/voice-profile, /api/voice-profile/status
    - health.py:         /api/health, /api/ready, /api/health/detailed

Routes stay thin: parse the request, resolve the caller, call a service,
wrap the result in the response envelope.
"""
