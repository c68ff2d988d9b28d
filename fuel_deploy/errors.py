"""Base exception for deployment failures.

Concrete exceptions live next to the code raising them,
e.g. :py:class:`fuel_deploy.salt.SaltConflictError`
or :py:class:`fuel_deploy.submit.SubmissionTimeoutError`.
"""


class DeployError(Exception):
    """A deployment run cannot continue.

    Any subclass aborts the whole multi-package run.
    The orchestrator fills in :py:attr:`package_name` so the caller knows where we stopped.
    """

    def __init__(self, msg: str, contract_id: str | None = None):
        super().__init__(msg)

        #: Hex contract id, if it was computed before the failure
        self.contract_id = contract_id

        #: Set by :py:func:`fuel_deploy.deploy.deploy`
        self.package_name: str | None = None
