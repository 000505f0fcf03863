from .core import (
    ReferenceRepoState,
    ReferenceRepoStore,
    reference_repo_name,
)

from .execution import (
    CancelledError,
    CommandRunner,
    ExecutionError,
    FastCloneError,
    ShellInvocationError,
    fail_on_error,
    shell_safe,
)

from .submodules import (
    Submodule,
    SubmoduleManifest,
    SubmoduleWalker,
    parse_submodule_init,
)

from .prefetch import (
    Prefetcher,
    Supervisor,
)

from .clone import (
    FastClone,
    path_from_git_url,
)

from .config import (
    Settings,
    load_settings,
)
