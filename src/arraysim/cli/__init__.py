"""
Command-line interface for arraysim.

The CLI is built using the Click framework:

- Running a simulator server
- Listing and killing registered servers
- Managing the settings file
- Probing a running server

Examples
--------
Starting a server on a non-default port:
```bash
$ arraysim server -p 9000
```

Checking what a running server reports:
```bash
$ arraysim probe -p 9000
```

See Also
--------
arraysim.server : Server and client
arraysim.system : Settings


CLI Tree
--------

```
$ arraysim --tree
cli
└── kill
└── list
└── probe
└── server
└── settings
    └── init
    └── show
```
"""

from .base import cli, tree_option

__all__ = ["cli", "tree_option"]
