"""
chancesign.runtime
==================

Runtime for live sessions.

Key Components
--------------
- `LiveMonitor`: running statistics and interim SPRT looks for one session
- `MonitorConfig`: look interval and SPRT error rates
- `MonitorLook`: the state recorded at each look
"""
