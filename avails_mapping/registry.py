"""
Entity registry — aggregates per-row fragments into Avails and Assets.

Rows are processed strictly in order.  The first row that mentions an
ALID (or an asset key) *defines* that entity; later rows only add
transactions and entitlements, and are checked against the defining row
on the fields that must agree.  On disagreement the first value is kept
and an ``InconsistentRedefinition`` diagnostic names both rows.
"""

from typing import Optional

from .diagnostics import Category
from .nodes import OutputNode, new_node
from .rows import Pedigree, Row
from .strategies import BuildContext, content_id_column, map_work_type

MODULE = "registry"

AVAIL_INVARIANTS = ("Avail/DisplayName", "Avail/ServiceProvider",
                    "Avail/ExceptionFlag")
ASSET_INVARIANTS = ("AvailAsset/WorkType", "AvailAsset/ContentID",
                    "AvailAsset/EpisodeContentID", "AvailAsset/SeasonContentID",
                    "AvailAsset/SeriesContentID")


class Asset:
    def __init__(self, key: str, node: OutputNode, row: Row):
        self.key = key
        self.node = node
        self.row = row

    @property
    def work_type(self) -> str:
        return self.row.value("AvailAsset/WorkType")


class Avail:
    """One Avail and everything aggregated into it so far."""

    def __init__(self, alid: str, row: Row, header: list[OutputNode],
                 exception_flag: Optional[OutputNode]):
        self.alid = alid
        self.row = row
        self.node = new_node("avails:Avail")
        self.header = header
        self.exception_flag = exception_flag
        self.assets: list[Asset] = []
        self.transactions: list[OutputNode] = []
        self.entitlements: dict[str, OutputNode] = {}

    def entitlement_ids(self, ecosystem: str) -> list[str]:
        group = self.entitlements.get(ecosystem)
        if group is None:
            return []
        return [c.text for c in group.children]

    def build_node(self) -> OutputNode:
        """(Re)attach children in schema order and return the Avail node."""
        ordered = list(self.header)
        ordered.extend(self.entitlements.values())
        ordered.extend(self.transactions)
        ordered.extend(a.node for a in self.assets)
        if self.exception_flag is not None:
            ordered.append(self.exception_flag)
        for child in list(self.node.children):
            self.node.remove(child)
        self.node.extend(ordered)
        return self.node


class EntityRegistry:
    """Deduplicating store of Avails and Assets for one ingestion pass."""

    def __init__(self, ctx: BuildContext):
        self.ctx = ctx
        self._avails: dict[str, Avail] = {}
        self._assets: dict[str, Asset] = {}

    @property
    def avails(self) -> list[Avail]:
        return list(self._avails.values())

    @property
    def assets(self) -> list[Asset]:
        return list(self._assets.values())

    # ------------------------------------------------------------------
    # Avails
    # ------------------------------------------------------------------

    def get_or_create_avail(self, row: Row) -> Optional[Avail]:
        """Return the Avail for the row's ALID, creating it on first sight.

        A row without an ALID cannot be aggregated; it is reported and
        ``None`` is returned.
        """
        alid = row.get("Avail/ALID")
        if alid.is_empty():
            self.ctx.log.error(
                Category.MISSING_REQUIRED_FIELD,
                "Missing ALID; row can not be aggregated into an Avail",
                locator=alid.source, module=MODULE,
                details=f"row {row.row_number}",
            )
            return None

        avail = self._avails.get(alid.raw_value)
        if avail is None:
            avail = self._create_avail(alid, row)
            self._avails[alid.raw_value] = avail
            return avail

        for column in AVAIL_INVARIANTS:
            self._check_match("Avail", avail.row, row, column)
        first_type = map_work_type(avail.row.value("AvailAsset/WorkType"))
        this_type = map_work_type(row.value("AvailAsset/WorkType"))
        if first_type != this_type:
            self.ctx.log.error(
                Category.INCONSISTENT_REDEFINITION,
                "Inconsistent WorkType; value not compatible with 1st "
                "definition of referenced Avail",
                locator=row.get("AvailAsset/WorkType").source,
                module=MODULE,
                details=f"Avail was 1st defined in row {avail.row.row_number} "
                        f"with AvailType '{first_type}'",
            )
        return avail

    def _create_avail(self, alid: Pedigree, row: Row) -> Avail:
        ctx = self.ctx
        s = ctx.strategy
        header = [ctx.leaf("avails:ALID", alid),
                  s.build_disposition(ctx, row),
                  s.build_publisher(ctx, row, "avails:Licensor",
                                    "Avail/DisplayName")]
        if not row.get("Avail/ServiceProvider").is_empty():
            header.append(s.build_publisher(ctx, row, "avails:ServiceProvider",
                                            "Avail/ServiceProvider"))

        work_type = row.get("AvailAsset/WorkType")
        if work_type.is_empty():
            header.extend(ctx.placeholder("avails:AvailType", work_type,
                                          "AvailAsset/WorkType"))
        else:
            header.append(ctx.leaf("avails:AvailType", work_type,
                                   map_work_type(work_type.raw_value)))

        desc = row.get("Avail/ShortDescription")
        if not desc.is_empty():
            header.append(ctx.leaf("avails:ShortDescription", desc))

        flag = row.get("Avail/ExceptionFlag")
        flag_node = None
        if not flag.is_empty():
            flag_node = ctx.leaf("avails:ExceptionFlag", flag,
                                 ctx.interpreter.typed_value(
                                     "avails:ExceptionFlag", flag))
        avail = Avail(alid.raw_value, row, header, flag_node)
        ctx.tracker.record(avail.node, alid)
        return avail

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def asset_key(self, row: Row) -> str:
        """``<prefix>ContentID:<content id>__<ALID>``, where the prefix
        follows the work type."""
        column = content_id_column(row.value("AvailAsset/WorkType"))
        prefix = column.split("/")[-1]
        return f"{prefix}:{row.value(column)}__{row.value('Avail/ALID')}"

    def get_or_create_asset(self, row: Row, avail: Avail) -> Asset:
        key = self.asset_key(row)
        asset = self._assets.get(key)
        if asset is None:
            asset = Asset(key, self.ctx.strategy.build_asset(self.ctx, row),
                          row)
            self._assets[key] = asset
            avail.assets.append(asset)
            return asset

        consistent = all([self._check_match("Asset", asset.row, row, column)
                          for column in ASSET_INVARIANTS])
        if consistent:
            self.ctx.log.info(
                Category.REDUNDANT_DEFINITION,
                "Ignoring redundant Asset information",
                locator=row.get("AvailAsset/WorkType").source,
                module=MODULE,
                details=f"Asset was 1st defined in row {asset.row.row_number}",
            )
            self._merge_ratings(asset, row)
        return asset

    def _merge_ratings(self, asset: Asset, row: Row) -> None:
        target = self.ctx.strategy.asset_metadata.get(asset.work_type)
        if target is None:
            return
        entity, tag = target
        metadata = asset.node.child(tag.split(":")[-1])
        if metadata is not None:
            self.ctx.interpreter.merge_functions(
                self.ctx.config.mappings[entity], row, metadata)

    # ------------------------------------------------------------------
    # Transactions and entitlements
    # ------------------------------------------------------------------

    def add_transaction(self, avail: Avail, transaction: OutputNode) -> None:
        avail.transactions.append(transaction)

    def add_entitlement(self, avail: Avail, ecosystem: str,
                        pedigree: Pedigree) -> bool:
        """Add an ecosystem id; returns False if it was already present."""
        group = avail.entitlements.get(ecosystem)
        if group is None:
            group = new_node("avails:SharedEntitlement")
            group.set("ecosystem", ecosystem)
            self.ctx.tracker.record(group, pedigree)
            avail.entitlements[ecosystem] = group
        if pedigree.raw_value in avail.entitlement_ids(ecosystem):
            return False
        group.append(self.ctx.leaf("avails:EcosystemID", pedigree))
        return True

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def _check_match(self, entity: str, first: Row, row: Row,
                     column: str) -> bool:
        """Compare *column* with the defining row; an undefined column
        counts as a match."""
        if not row.has(column) or not first.has(column):
            return True
        original = first.get(column)
        current = row.get(column)
        if original.raw_value == current.raw_value:
            return True
        self.ctx.log.error(
            Category.INCONSISTENT_REDEFINITION,
            f"Inconsistent specification; value does not match 1st "
            f"definition of referenced {entity}",
            locator=current.source, module=MODULE,
            details=f"{entity} was 1st defined in row {first.row_number} "
                    f"which specifies {column} as '{original.raw_value}'",
        )
        return False

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def assemble(self) -> OutputNode:
        """Root ``AvailList`` with Avails in first-occurrence order."""
        root = new_node("avails:AvailList")
        for avail in self._avails.values():
            root.append(avail.build_node())
        return root
