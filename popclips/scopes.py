UNAUTHENTICATED_WRITE_PREFIX = "unauthenticated_write_"


UNAUTHENTICATED_READ_PREFIX = "unauthenticated_read_"


WRITE_PREFIX = "write_"


READ_PREFIX = "read_"


def parse_scopes(scopes):
    """Turn "read_products, write_files" (or a list of them) into a list."""
    if isinstance(scopes, str):
        scopes = scopes.split(",")
    return [scope.strip() for scope in scopes if scope and scope.strip()]


def get_implied_scopes(scopes):
    implied_scopes = set()
    for scope in scopes:
        if scope.startswith(UNAUTHENTICATED_WRITE_PREFIX):
            implied_scopes.add(
                UNAUTHENTICATED_READ_PREFIX
                + scope.removeprefix(UNAUTHENTICATED_WRITE_PREFIX)
            )
        elif scope.startswith(WRITE_PREFIX):
            implied_scopes.add(READ_PREFIX + scope.removeprefix(WRITE_PREFIX))
    return implied_scopes


def scopes_have_changed(installed_scopes, expected_scopes):
    # @NOTE: The shop does not need to re-install if the expected scopes are
    # still covered by what was granted on install, write_x grants read_x.
    installed = set(parse_scopes(installed_scopes or []))
    expected = set(parse_scopes(expected_scopes))
    return not expected.union(get_implied_scopes(expected)).issubset(
        installed.union(get_implied_scopes(installed))
    )
