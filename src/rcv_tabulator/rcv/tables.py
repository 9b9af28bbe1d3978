"""Contains RCV_tables class which is added into RCV.
"""

from typing import Dict, List, Tuple

import decimal

import pandas as pd

import rcv_tabulator.util as util

EXHAUST_ROW = "exhaust"
RESIDUAL_ROW = "residual_surplus"
COLSUM_ROW = "colsum"


class RCV_tables:
    """Extra methods added into RCV class"""

    def get_round_tally_tuple(
        self, round_num: int, only_round_active_candidates: bool = False
    ) -> List[Tuple]:
        """
        Return two index-matched tuples, candidate names and vote counts, for the round. Sorted in descending order by vote count and then by ascending order by candidate name.

        :param round_num: Round number for which to return vote counts for.
        :type round_num: int
        :param only_round_active_candidates: If True, candidates elected in an earlier round are left out. Defaults to False
        :type only_round_active_candidates: bool, optional
        :return: List containing a tuple of candidate names and a tuple of vote totals.
        :rtype: List[Tuple]
        """
        tally = self.get_round_tally(round_num)

        if only_round_active_candidates:
            tally = {
                cand: count
                for cand, count in tally.items()
                if self._won.get(cand) is None or self._won[cand] >= round_num
            }

        return list(zip(*sorted(tally.items(), key=lambda x: (-x[1], x[0]))))

    def get_round_tally_dict(
        self, round_num: int, only_round_active_candidates: bool = False
    ) -> Dict[str, decimal.Decimal]:
        """
        Return a dictionary containing candidate names as keys and vote counts as values.

        :param round_num: Round number for which to return vote counts for.
        :type round_num: int
        :param only_round_active_candidates: See :meth:`get_round_tally_tuple`. Defaults to False
        :type only_round_active_candidates: bool, optional
        :return: Dictionary containing candidate names and vote totals.
        :rtype: Dict[str, decimal.Decimal]
        """
        return {
            cand: count
            for cand, count in zip(
                *self.get_round_tally_tuple(round_num, only_round_active_candidates=only_round_active_candidates)
            )
        }

    def _ordered_candidates(self) -> List[str]:
        # winners in ascending order of round won
        # followed by losers in descending order of round lost
        first_round = self.get_round_tally(1)

        def order_key(d):
            first_round_count = first_round.get(d["name"], decimal.Decimal(0))
            if d["round_elected"] is not None:
                return (0, d["round_elected"], -first_round_count, d["name"])
            if d["round_eliminated"] is None:
                return (1, 0, -first_round_count, d["name"])
            return (2, -d["round_eliminated"], -first_round_count, d["name"])

        return [d["name"] for d in sorted(self.get_candidate_outcomes(), key=order_key)]

    def get_round_by_round_table(self) -> pd.DataFrame:
        """Create a table containing round by round details for the tabulation. Rows are candidates,
        inactive ballots ('exhaust'), residual surplus and a column sum. Each round has count, active percent
        and transfer (change into the next round) columns.

        :return: round by round table
        :rtype: pd.DataFrame
        """
        num_rounds = self.n_rounds()
        candidates = self._ordered_candidates()
        row_names = candidates + [EXHAUST_ROW, RESIDUAL_ROW]

        round_counts = []
        for rnd in range(1, num_rounds + 1):
            tally = self.get_round_tally(rnd)
            counts = {cand: tally.get(cand, decimal.Decimal(0)) for cand in candidates}
            counts[EXHAUST_ROW] = self.get_inactive_votes(rnd)
            counts[RESIDUAL_ROW] = sum(
                (self.get_residual_surplus(r) for r in range(1, rnd + 1)), decimal.Decimal(0)
            )
            round_counts.append(counts)

        rcv_df = pd.DataFrame({"candidate": row_names + [COLSUM_ROW]})

        for rnd in range(1, num_rounds + 1):

            counts = round_counts[rnd - 1]
            active_total = sum((counts[cand] for cand in candidates), decimal.Decimal(0))

            rnd_count_col = f"r{rnd}_count"
            rnd_percent_col = f"r{rnd}_active_percent"
            rnd_transfer_col = f"r{rnd}_transfer"

            rcv_df[rnd_count_col] = [util.decimal2float(counts[row]) for row in row_names] + [
                util.decimal2float(sum(counts.values(), decimal.Decimal(0)))
            ]

            percents = [
                round(float(self.rules.divide(100 * counts[cand], active_total)), 3) if active_total else 0.0
                for cand in candidates
            ]
            rcv_df[rnd_percent_col] = percents + [float("nan"), float("nan"), round(sum(percents), 3)]

            if rnd < num_rounds:
                next_counts = round_counts[rnd]
                transfers = [util.decimal2float(next_counts[row] - counts[row]) for row in row_names]
                rcv_df[rnd_transfer_col] = transfers + [round(sum(transfers), 3)]
            else:
                rcv_df[rnd_transfer_col] = float("nan")

        return rcv_df

    def get_precinct_round_by_round_table(self, precinct: str) -> pd.DataFrame:
        """Round by round counts for one precinct. Requires `tabulate_by_precinct`.

        :param precinct: Precinct label.
        :type precinct: str
        :return: Table with a row per candidate plus a column sum, and one count column per round.
        :rtype: pd.DataFrame
        """
        candidates = self._ordered_candidates()
        rcv_df = pd.DataFrame({"candidate": candidates + [COLSUM_ROW]})

        for rnd in range(1, self.n_rounds() + 1):
            tally = self.get_precinct_round_tally_dict(precinct, rnd)
            counts = [tally.get(cand, decimal.Decimal(0)) for cand in candidates]
            rcv_df[f"r{rnd}_count"] = [util.decimal2float(c) for c in counts] + [
                util.decimal2float(sum(counts, decimal.Decimal(0)))
            ]

        return rcv_df

    def get_ballot_outcome_table(self) -> pd.DataFrame:
        """One row per ballot per logged round outcome, in ballot order.

        :return: Table with ballot_id, precinct, batch, round, outcome, detail and value columns.
        :rtype: pd.DataFrame
        """
        rows = []
        for cvr in self.cvrs:
            for outcome in cvr.outcomes:
                rows.append(
                    {
                        "ballot_id": cvr.id,
                        "precinct": cvr.precinct,
                        "batch": cvr.batch,
                        "round": outcome.round_num,
                        "outcome": outcome.outcome_type.value,
                        "detail": outcome.detail,
                        "value": util.decimal2float(outcome.value, round_places=8),
                    }
                )

        columns = ["ballot_id", "precinct", "batch", "round", "outcome", "detail", "value"]
        return pd.DataFrame(rows, columns=columns)

    def get_round_by_round_dict(self) -> Dict:
        """Create a dictionary containing election round by round information that matches the nesting structure of RCVIS upload format.
        Values are exact decimal strings.

        :return: Dictionary containing election round by round details
        :rtype: Dict
        """
        n_rounds = self.n_rounds()
        outcomes = self.get_candidate_outcomes()

        json_dict = {
            "config": {
                "numberOfWinners": self.rules.number_of_winners,
                "threshold": util.decimal2str(self.get_win_threshold()),
                "winners": sorted(self.get_winners(), key=lambda cand: (self._won[cand], cand)),
            },
            "results": [],
            "tieBreaks": [
                {key: util.decimal2str(val) for key, val in tb.to_dict().items()} for tb in self.get_tiebreaks()
            ],
        }

        for round_num in range(1, n_rounds + 1):

            tally_dict = {
                cand: util.decimal2str(tally)
                for cand, tally in zip(*self.get_round_tally_tuple(round_num))
            }

            # flows out of a candidate happen in the following round
            next_transfers = self.get_round_transfer_dict(round_num + 1) if round_num < n_rounds else {}

            transfer_list = []
            for d in outcomes:
                if d["round_elected"] == round_num:
                    key = "elected"
                elif d["round_eliminated"] == round_num:
                    key = "eliminated"
                else:
                    continue
                flows = next_transfers.get(d["name"], {})
                transfer_list.append(
                    {key: d["name"], "transfers": {target: util.decimal2str(val) for target, val in flows.items()}}
                )

            json_dict["results"].append(
                {
                    "round": round_num,
                    "tally": tally_dict,
                    "threshold": util.decimal2str(self.get_win_threshold(round_num)),
                    "inactive": util.decimal2str(self.get_inactive_votes(round_num)),
                    "residualSurplus": util.decimal2str(self.get_residual_surplus(round_num)),
                    "tallyResults": transfer_list,
                }
            )

        return json_dict
