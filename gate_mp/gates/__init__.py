"""
Message operators for gates, the if/switch construct over a discrete
selector.

A gate routes a shared variable into K branches (Enter), evaluates each
branch separately, and merges the branch results back into one variable
(Exit), weighted by per-branch case beliefs which Cases produces from the
selector.

Operator names follow the message they compute: `<target>_<quantity>`,
with a suffix for the inference scheme where there is more than one
(`_bp`, `_ep`, `_vmp`, `_observed`). Names ending in `_average_logarithm`
are the VMP forms of the matching `_average_conditional`.
"""
from . import cases, enter, exit
