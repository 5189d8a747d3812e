"""clawker build progress — from engine events to rendered output.

Modules
-------
classifier
    Pure helpers that decide which steps are internal, how names are
    displayed, and which build stage a step belongs to.
duration
    Compact, locale-independent elapsed-time formatting.
channel
    ``ProgressChannel``: bounded producer/consumer hand-off with a
    one-shot ``done`` signal.
aggregator
    ``StepAggregator`` owns the ordered step table and enforces the
    status lattice.
plain / tty
    The two renderers.  Plain output is deterministic and golden-file
    friendly; TTY output is a ``rich.live.Live`` region.
driver
    ``run_build_pipeline`` wires builder, channel and renderer together.
"""
