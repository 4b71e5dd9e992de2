"""storygraph: forensic classification, waveform sync and FCP7 export for multicam footage."""

__version__ = "0.3.0"
