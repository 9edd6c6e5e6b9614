"""
airdrop-tao — token airdrops on Bittensor / Substrate networks.

Recipients are grouped into batches; each batch is sent as one atomic
Utility.batch_all extrinsic, confirmed to a configured depth, and every
confirmed transfer is written to a CSV audit trail.
"""

__version__ = "0.1.0"
