"""Territory conquest engine.

Turns a submitted GPS path into a claimed polygon and applies it to the
shared map: merging the owner's own land, cutting rivals' land into
fragments and sweeping away degenerate leftovers, all inside one
transaction. HTTP routes and socket handlers import from here.
"""
