# %%
import math

import torch
from matplotlib import pyplot as plt

from gate_mp import Discrete, Gaussian, GateSettings
from gate_mp.gates import cases, enter, exit

# %%
"""#Two-component mixture through a gate"""

#@title Set parameters
gate_settings = GateSettings(
    force_proper=True,
    DEBUG_MODE=True,
)

prior = Gaussian.from_mean_and_variance(0.0, 10.0)
selector = Discrete([0.4, 0.6])

# message from each branch's likelihood factor to its copy of x
branch_msgs = [
    Gaussian.from_mean_and_variance(-2.0, 0.5),
    Gaussian.from_mean_and_variance(3.0, 1.0),
]

xs = torch.linspace(-6, 8, 400, dtype=torch.float64)


def density(g):
    return torch.tensor([math.exp(g.log_prob([x])) for x in xs.tolist()])


# %%
#@title Messages back to x {vertical-output: true}
bp_msg = enter.enter_value_bp(branch_msgs, selector, prior, settings=gate_settings)
ep_msg = enter.enter_value_ep(branch_msgs, selector, prior, settings=gate_settings)
vmp_msg = enter.enter_value_vmp(branch_msgs, selector, settings=gate_settings)

for name, msg in [("BP", bp_msg), ("EP", ep_msg), ("VMP", vmp_msg)]:
    post = Gaussian(1).set_to_product(prior, msg)
    mean, cov = post.mean_and_cov()
    print(f"{name} posterior mean {mean.item():.3f} var {cov.item():.3f}")
    plt.plot(xs, density(post), label=f"{name} posterior")

for i, msg in enumerate(branch_msgs):
    plt.plot(xs, density(msg), linestyle="--", color="grey", label=f"branch {i}" if i == 0 else None)
plt.legend()
plt.show()

# %%
#@title Selector posterior from the branch evidence
branch_beliefs = [Gaussian(1).set_to_product(prior, msg) for msg in branch_msgs]
to_cases = exit.exit_cases_ep(prior, branch_msgs)
selector_msg = cases.int_cases_i_average_conditional(to_cases)
selector_post = Discrete(selector.probs * selector_msg.probs)
print("selector posterior", selector_post.probs.tolist())

# %%
#@title Exit: merge the branch beliefs {vertical-output: true}
case_msgs = cases.int_cases_average_conditional(selector_post)
merged = exit.exit_value_bp(case_msgs, branch_beliefs, settings=gate_settings)
mean, cov = merged.mean_and_cov()
print(f"merged mean {mean.item():.3f} var {cov.item():.3f}")
print("log evidence", exit.exit_log_evidence(
    cases.int_cases_average_conditional(selector), branch_msgs, prior))

mixture_density = sum(
    selector_post[i] * density(g) for i, g in enumerate(branch_beliefs))
plt.plot(xs, mixture_density, label="exact mixture")
plt.plot(xs, density(merged), label="moment matched")
plt.legend()
plt.show()

# %%
