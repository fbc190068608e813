"""streamcompose — timestamp-synchronized composition of live video streams.

Independently clocked I420 streams are buffered per stream, aligned on a
fixed output frame rate and composed through a validated scene graph of
videos, images, textures (transformation chains) and layouts. Scenes can
be built in code or declared in YAML manifests.
"""
