import unittest

from dropiq.models.database import Airdrop, BehaviorEvent, Follow, Strategy, StrategyLike, User, UserAirdropStatus


def _constraint_names(table) -> set:
    return {c.name for c in table.constraints if c.name}


class TestDatabaseIndexes(unittest.TestCase):
    def test_users_timestamp_indexes_exist(self):
        users_table = User.__table__
        index_names = {ix.name for ix in users_table.indexes}
        self.assertIn("ix_users_created_at", index_names)
        self.assertIn("ix_users_last_login", index_names)

    def test_airdrop_listing_indexes_exist(self):
        index_names = {ix.name for ix in Airdrop.__table__.indexes}
        self.assertIn("ix_airdrops_status", index_names)
        self.assertIn("ix_airdrops_hype_score", index_names)
        self.assertIn("ix_airdrops_slug", index_names)

    def test_behavior_events_indexed_by_user_and_time(self):
        index_names = {ix.name for ix in BehaviorEvent.__table__.indexes}
        self.assertIn("ix_behavior_events_user_ts", index_names)

    def test_one_row_per_user_and_target(self):
        self.assertIn("uq_user_airdrop", _constraint_names(UserAirdropStatus.__table__))
        self.assertIn("uq_strategy_like", _constraint_names(StrategyLike.__table__))
        self.assertIn("uq_follow", _constraint_names(Follow.__table__))
        self.assertIn("ck_follow_not_self", _constraint_names(Follow.__table__))

    def test_airdrop_metadata_column_name(self):
        self.assertIn("metadata", Airdrop.__table__.columns)
        self.assertIn("ix_strategies_created_at", {ix.name for ix in Strategy.__table__.indexes})


if __name__ == "__main__":
    unittest.main()
