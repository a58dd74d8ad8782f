"""fob-prices: incremental import of FOB reference export prices."""
