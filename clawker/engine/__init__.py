"""Build engine adapters.

Every adapter implements the ``Builder`` protocol from ``clawker.engine.base``:

- ``BuildKitBuilder``: ``docker buildx build --progress=rawjson``
- ``LegacyBuilder``: classic ``docker build`` transcript
- ``DockerBuilder``: picks one of the two from ``BuildOptions.buildkit_enabled``
- ``ReplayBuilder``: replays a recorded scenario without Docker
"""
