"""
Latent-class soft labels from imperfect diagnostic tests.

Converts noisy binary test results into posterior class-membership
probabilities under a fitted latent-class model, for use as soft
supervision targets by a downstream classifier.

Modules:
    errors - Error taxonomy
    naming - Fallback class/indicator names and name validation
    model - Immutable fitted model with named axes, JSON interchange
    cpt - Conditional probability table extraction
    posterior - Batch posterior inference
    batches - CSV subject batches and posterior output
    settings - YAML inference settings
    cli - Command-line interface entrypoints
"""

from . import errors
from . import naming
from . import model
from . import cpt
from . import posterior
from . import batches
from . import settings
from . import cli

__version__ = "1.0.0"
