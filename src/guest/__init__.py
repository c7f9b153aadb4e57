"""Guest program executed by the proving backend.

Everything here is restricted to integers and bytes: no ``Decimal``, no
``hashlib`` and no imports from the host packages. The guest recomputes the
ledger commitment and the tax from the serialized ``TaxInput`` and emits the
public values. Host and guest are kept in agreement by golden tests.
"""
