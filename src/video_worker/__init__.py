"""Video processing worker: HLS and thumbnail derivation, scratch cleanup."""
