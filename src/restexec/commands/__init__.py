"""Built-in CLI sub-commands for restexec.

* :mod:`~restexec.commands.send` -- execute one HTTP request.
* :mod:`~restexec.commands.config` -- view and modify the persisted defaults.

``send`` is a plain callback registered directly on the root app; ``config``
is a :class:`typer.Typer` sub-application.
"""
