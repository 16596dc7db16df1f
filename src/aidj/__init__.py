# AI DJ: automatic track-selection engine
# Package: aidj

__version__ = "1.0.0-dev"
__author__ = "AI DJ Contributors"
__description__ = "Track-selection engine that sequences a pool of tracks into a DJ set"

# Module structure:
#   - aidj.analyze    : Harmonic key mapping (Camelot wheel)
#   - aidj.generate   : Compatibility scoring, party phases, session engine
#   - aidj.catalog    : Validated conversion of catalog payloads
#   - aidj.config     : Configuration management
#   - aidj.cli        : Simulated-set command-line interface
