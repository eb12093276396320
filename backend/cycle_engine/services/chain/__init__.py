"""Chain adapter: JSON-RPC transport, ABI codec and the cycle contract."""

from cycle_engine.services.chain.rpc import JsonRpcClient, RpcCallError
from cycle_engine.services.chain.contract import CycleContract

__all__ = ["JsonRpcClient", "RpcCallError", "CycleContract"]
