from smtdecoder.common.from_params import FromParams
from smtdecoder.common.params import Params
from smtdecoder.common.registrable import Registrable
from smtdecoder.common.tqdm import Tqdm
from smtdecoder.common.util import JsonDict
