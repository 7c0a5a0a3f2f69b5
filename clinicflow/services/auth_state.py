"""Current-account stream and the watcher that derives caller state from it."""

from collections.abc import Callable

import structlog

from clinicflow.core.access import Account, AuthContext, CallerContext
from clinicflow.core.observable import Observable, OnError, Subscription

logger = structlog.get_logger(__name__)


class AccountStream(Observable[Account | None]):
    """Who is signed in on one connection; starts signed out."""

    def __init__(self) -> None:
        super().__init__()
        self.emit(None)

    @property
    def current(self) -> Account | None:
        return self.value

    def sign_in(self, account: Account) -> None:
        if self.current != account:
            self.emit(account)

    def sign_out(self) -> None:
        if self.current is not None:
            self.emit(None)


class AuthStateWatcher:
    """Follows the account stream and, per account, a live caller context.

    Each account event replaces the nested context subscription: the
    previous one is cancelled before a new one is opened. Unsubscribing
    the watcher cancels both the account subscription and the nested one.
    """

    def __init__(
        self,
        accounts: AccountStream,
        observe_caller: Callable[[Account], Observable[CallerContext]],
    ):
        self.accounts = accounts
        self.observe_caller = observe_caller

    def subscribe(
        self, on_state: Callable[[CallerContext], None], on_error: OnError | None = None
    ) -> Subscription:
        outer = Subscription()
        inner: Subscription | None = None

        def on_account(account: Account | None) -> None:
            nonlocal inner
            if inner is not None:
                outer.remove(inner)
                inner.unsubscribe()
                inner = None

            if account is None:
                on_state(CallerContext(auth=AuthContext()))
                return

            logger.debug("auth_state_account_changed", account_id=account.account_id)
            inner = outer.add(self.observe_caller(account).subscribe(on_state, on_error))

        outer.add(self.accounts.subscribe(on_account, on_error))
        return outer
