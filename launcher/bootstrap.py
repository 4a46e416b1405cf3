"""
Sequential bootstrap of a single node: launch, wait for funds, register, supervise.
"""
from typing import Callable, Optional
import logging

import requests

from core.config import NodeConfig
from core.rpc import JsonRpcClient
from node.funding import FundingWaiter
from node.registration import RegistrationResult, RoleActionDispatcher
from node.supervisor import NodeSupervisor

logger = logging.getLogger(__name__)


def bootstrap(config: NodeConfig,
              session: Optional[requests.Session] = None,
              waiter: Optional[FundingWaiter] = None,
              dispatcher: Optional[RoleActionDispatcher] = None,
              supervisor: Optional[NodeSupervisor] = None,
              on_registered: Optional[Callable[[RegistrationResult], None]] = None) -> int:
    """
    Run the node described by `config` until it exits.

    Returns the node's exit status. Any failure after launch still stops
    the node before the exception propagates.
    """
    rpc = JsonRpcClient(config.rpc_endpoint, session=session)
    if waiter is None:
        waiter = FundingWaiter(config.key_path, rpc, timeout=config.funding_timeout)
    if dispatcher is None:
        dispatcher = RoleActionDispatcher.for_config(config, rpc, session=session)
    if supervisor is None:
        supervisor = NodeSupervisor(config.launch_args())

    with supervisor:
        # 1. Launch the node; it generates its key on startup
        supervisor.start()

        # 2. Block until the generated account holds funds
        account = waiter.wait()

        # 3. Activate the node for its role
        result = dispatcher.dispatch(account)
        if on_registered is not None:
            on_registered(result)

        # 4. Keep running until the node exits or we are signalled
        logger.info(f"{config.role.value.capitalize()} node is running, press Ctrl+C to stop")
        return supervisor.await_termination()
