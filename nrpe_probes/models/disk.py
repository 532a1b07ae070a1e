from pydantic import BaseModel, Field

# 0-based positions of the counters in a kernel block stat line
_READ_IOS_FIELD = 0
_READ_SECTORS_FIELD = 2
_WRITE_IOS_FIELD = 4
_WRITE_SECTORS_FIELD = 6


class DiskSnapshot(BaseModel):
    """Point-in-time block device counters (monotonic until reboot)."""

    io_read_count: int = Field(..., ge=0, description="Completed read requests")
    sector_read_count: int = Field(..., ge=0, description="Sectors read")
    io_write_count: int = Field(..., ge=0, description="Completed write requests")
    sector_write_count: int = Field(..., ge=0, description="Sectors written")

    @classmethod
    def from_stat_line(cls, line: str) -> "DiskSnapshot":
        """
        Build a snapshot from a kernel block statistics line.

        Only fields 1, 3, 5 and 7 are used (read ios, read sectors, write ios,
        write sectors); everything after them is ignored. Raises ValueError if
        the line is too short or a counter is not a non-negative integer.
        """
        fields = line.split()
        if len(fields) <= _WRITE_SECTORS_FIELD:
            raise ValueError(
                f"expected at least {_WRITE_SECTORS_FIELD + 1} fields, got {len(fields)}"
            )
        return cls(
            io_read_count=int(fields[_READ_IOS_FIELD]),
            sector_read_count=int(fields[_READ_SECTORS_FIELD]),
            io_write_count=int(fields[_WRITE_IOS_FIELD]),
            sector_write_count=int(fields[_WRITE_SECTORS_FIELD]),
        )

    @classmethod
    def from_record(cls, text: str) -> "DiskSnapshot":
        """Parse the persisted form written by to_record()."""
        fields = text.split()
        if len(fields) != 4:
            raise ValueError(f"expected 4 counters, got {len(fields)}")
        io_read, sector_read, io_write, sector_write = (int(f) for f in fields)
        return cls(
            io_read_count=io_read,
            sector_read_count=sector_read,
            io_write_count=io_write,
            sector_write_count=sector_write,
        )

    def to_record(self) -> str:
        return (
            f"{self.io_read_count} {self.sector_read_count} "
            f"{self.io_write_count} {self.sector_write_count}\n"
        )


class PersistedSample(BaseModel):
    """Previous snapshot as found on disk, with the file's modification time."""

    snapshot: DiskSnapshot
    mtime: float = Field(..., description="Last modification time of the sample file")


class DiskIoThresholds(BaseModel):
    """One threshold level (warning or critical) for the three disk metrics."""

    iops: int = Field(..., ge=0, description="Combined read+write operations per second")
    read: int = Field(..., ge=0, description="Read bandwidth in the selected unit per second")
    write: int = Field(..., ge=0, description="Write bandwidth in the selected unit per second")

    @classmethod
    def parse(cls, raw: str) -> "DiskIoThresholds":
        """Parse an "iops,read,write" triple such as "200,10,10"."""
        parts = [part.strip() for part in raw.split(",")]
        if len(parts) != 3 or not all(parts):
            raise ValueError(
                f"threshold {raw!r} must be three comma separated values: iops,read,write"
            )
        iops, read, write = parts
        return cls(iops=iops, read=read, write=write)


class DiskRates(BaseModel):
    """Per-second rates derived from two snapshots."""

    iops: int = Field(..., ge=0)
    read: int = Field(..., ge=0)
    write: int = Field(..., ge=0)
    elapsed_seconds: int = Field(..., ge=1)
